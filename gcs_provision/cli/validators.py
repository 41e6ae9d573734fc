"""Input validation for CLI arguments."""
import re
import sys

BUCKET_NAME_PATTERN = r'^[a-z0-9][a-z0-9._-]{1,61}[a-z0-9]$'
TRANSFER_PROCESS_ID_PATTERN = r'^[A-Za-z0-9_-]+$'


def validate_bucket_name(name: str) -> None:
    """
    Validate bucket name matches GCS naming rules.

    Args:
        name: Bucket name to validate

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not re.match(BUCKET_NAME_PATTERN, name) or ".." in name or name.startswith("goog"):
        print(f"Error: Invalid bucket name '{name}'", file=sys.stderr)
        print("\nBucket names must be 3-63 characters of lowercase letters, digits,", file=sys.stderr)
        print("dashes (-), underscores (_) and dots (.), start and end with a letter or digit,", file=sys.stderr)
        print("and must not begin with 'goog'.", file=sys.stderr)
        print("\nExamples of valid names:", file=sys.stderr)
        print("  ✓ transfer-output", file=sys.stderr)
        print("  ✓ my_bucket.2024", file=sys.stderr)
        print("\nExamples of invalid names:", file=sys.stderr)
        print("  ✗ MyBucket (uppercase)", file=sys.stderr)
        print("  ✗ -bucket (starts with dash)", file=sys.stderr)
        sys.exit(2)


def validate_transfer_process_id(transfer_process_id: str) -> None:
    """
    Validate transfer process id is non-empty and uses [A-Za-z0-9_-] only.

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not transfer_process_id or not re.match(TRANSFER_PROCESS_ID_PATTERN, transfer_process_id):
        print(f"Error: Invalid transfer process id '{transfer_process_id}'", file=sys.stderr)
        print("\nAllowed characters: letters, numbers, underscores (_), hyphens (-)", file=sys.stderr)
        sys.exit(2)
