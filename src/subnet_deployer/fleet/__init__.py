"""Remote command rendering and SSM dispatch for the validator fleet."""

from subnet_deployer.fleet.commands import render_install_chain, render_install_subnet_chain
from subnet_deployer.fleet.dispatcher import FleetCommandDispatcher, classify_status

__all__ = [
    "FleetCommandDispatcher",
    "classify_status",
    "render_install_chain",
    "render_install_subnet_chain",
]
