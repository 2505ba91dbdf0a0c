import argparse
import sys

from .config import Config, validate_configuration
from .errors import RuntimecfgError
from .logging_setup import setup_logger
from .daemon import build_node, startup, run_loop
from .lb import KubernetesMembershipSource


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="runtimecfg",
        description="Resolve node identity and network configuration for a bare-metal control plane",
    )
    sub = parser.add_subparsers(dest="command")

    display = sub.add_parser("display", help="Resolve the node once and print it as JSON")
    display.add_argument("--with-backends", action="store_true",
                         help="Also query control-plane members for the API load balancer")

    sub.add_parser("monitor", help="Poll API health and load balancer backends (default)")

    args = parser.parse_args(argv)
    if args.command is None:
        args.command = "monitor"
    return args


def main(argv=None):
    args = parse_args(argv)
    cfg = Config()

    logger = setup_logger(
        name=cfg.logger_name,
        level=cfg.log_level,
        log_file=cfg.log_file,
        max_bytes=cfg.log_max_bytes,
        backup_count=cfg.log_backup_count,
        enable_structured_console=cfg.enable_structured_console,
        enable_structured_file=cfg.enable_structured_file,
        structured_log_file=cfg.structured_log_file
    )

    exit_code = 0
    try:
        if args.command == "display":
            errors = validate_configuration(cfg)
            if errors:
                logger.error("Configuration validation failed:")
                for e in errors:
                    logger.error(f" - {e}")
                return 1

            membership = None
            if args.with_backends:
                membership = KubernetesMembershipSource(cfg.kubeconfig_path, timeout=cfg.membership_timeout)
            node = build_node(cfg, membership_source=membership)
            print(node.to_json())
        else:
            context = startup(cfg)
            run_loop(cfg, context)
    except SystemExit as e:
        exit_code = e.code if isinstance(e.code, int) else 1
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
        exit_code = 130
    except RuntimecfgError as e:
        logger.error(f"Failed to resolve node configuration: {e}")
        exit_code = 1
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        exit_code = 1
    finally:
        for h in logger.handlers:
            h.flush()
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
