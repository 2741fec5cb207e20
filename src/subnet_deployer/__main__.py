"""Allow ``python -m subnet_deployer``."""

from subnet_deployer.cli import run_entrypoint

if __name__ == "__main__":
    run_entrypoint()
