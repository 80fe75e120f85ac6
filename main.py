# main.py
import os
import sys


def main():
    if os.geteuid() != 0:
        print("ERROR: The installer must be run as root.", file=sys.stderr)
        sys.exit(1)

    from config.loader import is_already_installed, read_installed_config, read_local_config
    from config.merge import merge
    from errors import MergeError
    from logger import log, set_debug
    from preflight import run_preflight_checks

    try:
        config = read_local_config()
        already_installed = is_already_installed()
        if already_installed:
            merge(config, read_installed_config())
    except (MergeError, OSError) as e:
        log.error("Cannot load config: %s", e)
        print(f"ERROR: cannot load config: {e}", file=sys.stderr)
        sys.exit(1)

    set_debug(config.install.debug)
    warnings = [] if already_installed else run_preflight_checks()

    from app import InstallerWizard
    app = InstallerWizard(config, already_installed=already_installed,
                          preflight_warnings=warnings)
    app.run()
    sys.exit(app.return_code or 0)


if __name__ == "__main__":
    main()
