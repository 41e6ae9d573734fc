"""CLI entrypoint for gcs-provision."""
import sys
import json
import argparse
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from .validators import validate_bucket_name, validate_transfer_process_id

VERSION = "0.1.0"

# Configure logging to stderr
logging.basicConfig(
    level=logging.WARNING,
    format="%(message)s",
    stream=sys.stderr
)
logger = logging.getLogger(__name__)


def _configure_verbosity(verbosity, config_level=None):
    """-v selects INFO and -vv DEBUG; otherwise the configured level applies."""
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = getattr(logging, str(config_level or "WARNING").upper(), logging.WARNING)
    logging.getLogger().setLevel(level)


def _runtime_config():
    """Load the config file, falling back to defaults when none exists."""
    from gcs_provision.provision.domains import config_loader

    try:
        config = config_loader.load_config()
    except FileNotFoundError:
        logger.info("No config file found, using defaults")
        return {
            "gcp": {},
            "provisioning": dict(config_loader.DEFAULT_PROVISIONING),
            "logging": dict(config_loader.DEFAULT_LOGGING),
        }
    config_loader.apply_authentication(config)
    return config


def _build_provisioner(project_id, config, executor):
    from gcs_provision.provision.domains.credentials import CredentialResolver
    from gcs_provision.provision.domains.iam_service import IamService
    from gcs_provision.provision.domains.vault import EnvironmentVault, SecretManagerVault
    from gcs_provision.provision.workflows.provisioner import GcsProvisioner

    if config["provisioning"]["vault"] == "environment":
        vault = EnvironmentVault()
    else:
        vault = SecretManagerVault(project_id)
    resolver = CredentialResolver(vault)
    iam_factory = functools.partial(
        IamService, token_lifetime_seconds=config["provisioning"]["token_lifetime_seconds"])
    return GcsProvisioner(resolver, iam_factory=iam_factory, executor=executor)


def cmd_version(args):
    """Show version information."""
    print(f"gcs-provision {VERSION}")


def cmd_config_set_path(args):
    """Set config file path preference."""
    from gcs_provision.provision.domains.preferences import set_preference

    config_path = Path(args.path).resolve()

    if not config_path.exists():
        print(f"Error: Config file does not exist: {config_path}", file=sys.stderr)
        sys.exit(1)

    if not config_path.is_file():
        print(f"Error: Path is not a file: {config_path}", file=sys.stderr)
        sys.exit(1)

    set_preference("config_path", str(config_path))
    print(f"Config path set to: {config_path}")


def cmd_config_show(args):
    """Show current config file path."""
    from gcs_provision.provision.domains.config_loader import default_config_path
    from gcs_provision.provision.domains.preferences import get_preference

    config_path_pref = get_preference("config_path")

    if config_path_pref:
        config_path = Path(config_path_pref)
        if config_path.exists():
            print(f"Config path: {config_path}")
        else:
            print(f"Config path (from preference, but file not found): {config_path}")
        print("Source: preference")
    else:
        default_config = default_config_path()
        print(f"Config path: {default_config}")
        if default_config.exists():
            print("Source: default")
        else:
            print("Source: default (file not found)")


def cmd_config_clear(args):
    """Clear config path preference."""
    from gcs_provision.provision.domains.config_loader import default_config_path
    from gcs_provision.provision.domains.preferences import clear_preference

    clear_preference("config_path")
    print(f"Config path preference cleared. Will use default: {default_config_path()}")


def cmd_provision(args):
    """Provision a bucket and a service account for a transfer process."""
    from gcs_provision.provision.domains import schema
    from gcs_provision.provision.domains.config_loader import get_project_id
    from gcs_provision.provision.domains.models import DataAddress
    from gcs_provision.provision.workflows.manifest import generate_resource_definition

    validate_transfer_process_id(args.transfer_process_id)
    if args.bucket_name:
        validate_bucket_name(args.bucket_name)

    config = _runtime_config()
    _configure_verbosity(args.verbose, config["logging"]["level"])
    project_id = args.project_id or get_project_id(config)
    if not project_id:
        print("Error: No project id. Pass --project-id, set GCP_PROJECT or configure gcp.project_id",
              file=sys.stderr)
        sys.exit(1)

    properties = {}
    if args.bucket_name:
        properties[schema.BUCKET_NAME] = args.bucket_name
    if args.service_account_key_name:
        properties[schema.SERVICE_ACCOUNT_KEY_NAME] = args.service_account_key_name
    if args.access_token_key_name:
        properties[schema.ACCESS_TOKEN_KEY_NAME] = args.access_token_key_name

    provisioning = config["provisioning"]
    definition = generate_resource_definition(
        args.transfer_process_id,
        DataAddress(properties=properties),
        project_id=project_id,
        location=args.location or provisioning["location"],
        storage_class=args.storage_class or provisioning["storage_class"],
    )

    with ThreadPoolExecutor(max_workers=provisioning["max_workers"]) as executor:
        provisioner = _build_provisioner(project_id, config, executor)
        result = provisioner.provision(definition).result()

    if result.failed:
        print(f"Error: {result.failure_detail}", file=sys.stderr)
        sys.exit(1)

    resource = result.content.resource
    if args.output:
        Path(args.output).write_text(json.dumps(resource.to_dict(), indent=2))
        print(f"Provisioned resource written to: {args.output}", file=sys.stderr)

    # The token itself is never printed
    print(json.dumps({
        "resource": resource.to_dict(),
        "token_expiration": result.content.secret_token.expiration,
    }, indent=2))


def cmd_deprovision(args):
    """Delete the service account of a provisioned resource."""
    from gcs_provision.provision.domains.models import ProvisionedResource

    resource_file = Path(args.resource_file)
    if not resource_file.is_file():
        print(f"Error: Resource file does not exist: {resource_file}", file=sys.stderr)
        sys.exit(1)

    try:
        resource = ProvisionedResource.from_dict(json.loads(resource_file.read_text()))
    except (ValueError, TypeError) as e:
        print(f"Error: Resource file is not a provisioned resource: {e}", file=sys.stderr)
        sys.exit(2)

    config = _runtime_config()
    _configure_verbosity(args.verbose, config["logging"]["level"])

    with ThreadPoolExecutor(max_workers=config["provisioning"]["max_workers"]) as executor:
        provisioner = _build_provisioner(resource.project_id, config, executor)
        result = provisioner.deprovision(resource).result()

    if result.failed:
        print(f"Error: {result.failure_detail}", file=sys.stderr)
        sys.exit(1)

    print(f"Deprovisioned resource: {result.content.provisioned_resource_id}")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="gcsprovision",
        description="gcs-provision CLI - provision GCS buckets with per-transfer service accounts",
        epilog="""
Exit codes:
  0 - Success
  1 - Runtime error (credentials, provisioning failure, etc.)
  2 - Usage error (invalid arguments, invalid bucket name, etc.)

Environment variables:
  GCP_PROJECT - GCP project ID (overrides config file)

Configuration:
  Default location: ~/.config/gcs-provision/config.yml
  Custom path: Set with 'gcsprovision config set-path <path>'
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase log output (-v info, -vv debug)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("version", help="Show version information")

    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_subparsers = config_parser.add_subparsers(dest="config_command")
    config_set_path_parser = config_subparsers.add_parser("set-path", help="Set config file path")
    config_set_path_parser.add_argument("path", help="Path to config file")
    config_subparsers.add_parser("show", help="Show current config path")
    config_subparsers.add_parser("clear", help="Clear config path preference")

    provision_parser = subparsers.add_parser(
        "provision",
        help="Provision a bucket for a transfer process",
        description="""
Create (or reuse) an empty bucket, a service account for the transfer process,
grant the account read/write access on the bucket and issue a token for it.

Credentials are taken from the vault key passed, or Application Default
Credentials when none is given.
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    provision_parser.add_argument("--transfer-process-id", required=True, help="Owning transfer process id")
    provision_parser.add_argument("--bucket-name", help="Bucket to provision (defaults to a generated id)")
    provision_parser.add_argument("--location", help="Bucket location (default from config)")
    provision_parser.add_argument("--storage-class", help="Bucket storage class (default from config)")
    provision_parser.add_argument("--project-id", help="GCP project ID (default from GCP_PROJECT or config)")
    credential_group = provision_parser.add_mutually_exclusive_group()
    credential_group.add_argument("--service-account-key-name", help="Secret holding a service account key file")
    credential_group.add_argument("--access-token-key-name", help="Secret holding an access token")
    provision_parser.add_argument("--output", help="Write the provisioned resource JSON to this file")

    deprovision_parser = subparsers.add_parser(
        "deprovision",
        help="Delete the service account of a provisioned resource (the bucket is kept)",
    )
    deprovision_parser.add_argument(
        "--resource-file", required=True, help="File written by 'provision --output'")

    return parser, config_parser


def main():
    """Main CLI entrypoint.

    Exit codes:
        0 - Success
        1 - Runtime errors (credentials, network, provisioning failure, etc.)
        2 - Usage errors (invalid arguments, invalid bucket name, etc.)
    """
    parser, config_parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(2)

    try:
        if args.command == "version":
            cmd_version(args)
        elif args.command == "config":
            if args.config_command == "set-path":
                cmd_config_set_path(args)
            elif args.config_command == "show":
                cmd_config_show(args)
            elif args.config_command == "clear":
                cmd_config_clear(args)
            else:
                config_parser.print_help()
                sys.exit(2)
        elif args.command == "provision":
            cmd_provision(args)
        elif args.command == "deprovision":
            cmd_deprovision(args)
        else:
            parser.print_help()
            sys.exit(2)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
