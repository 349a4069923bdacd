"""
CLI entry point, when used as a module: `python -m kbridge`.

Useful for debugging in the IDEs (use the start-mode "Module", module "kbridge").
"""
from kbridge import cli

if __name__ == '__main__':
    cli.main()
