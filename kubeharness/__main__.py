"""
CLI entry point, when used as a module: `python -m kubeharness`.

Useful for debugging in the IDEs (use the start-mode "Module", module "kubeharness").
"""
from kubeharness import cli

if __name__ == '__main__':
    cli.main()
