"""
aigit CLI entrypoint.

This module provides the console_script entrypoint for the aigit package.
"""


def main():
    """aigit CLI entrypoint."""
    from aigit.commands import aigit_app

    aigit_app()


if __name__ == "__main__":
    main()
