"""
Lottery API command line: credential provisioning.
"""
import argparse
import getpass
import sys

from lottery_api.store.postgres import BCRYPT_ROUNDS, hash_password


def main(argv=None):
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        prog="python -m lottery_api",
        description="Euromillones Results API - administration commands",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Prompt for a password and print its bcrypt hash
  python -m lottery_api hash-password

  # Read the password from stdin
  echo -n 's3cret' | python -m lottery_api hash-password --stdin

  # Then provision the credential
  INSERT INTO credentials (nickname, password_hash) VALUES ('admin', '<hash>');
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    hash_parser = subparsers.add_parser('hash-password', help='Generate a bcrypt hash for the credentials table')
    hash_parser.add_argument('--rounds', type=int, default=BCRYPT_ROUNDS,
                             help=f'bcrypt cost factor (default: {BCRYPT_ROUNDS})')
    hash_parser.add_argument('--stdin', action='store_true',
                             help='Read the password from stdin instead of prompting')

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == 'hash-password':
        return cmd_hash_password(args)
    return 1


def _read_password(from_stdin):
    if from_stdin or not sys.stdin.isatty():
        return sys.stdin.readline().rstrip("\r\n")
    password = getpass.getpass("Password: ")
    if password != getpass.getpass("Confirm password: "):
        print("Error: passwords do not match", file=sys.stderr)
        return None
    return password


def cmd_hash_password(args):
    """Print a bcrypt hash for a password read from the terminal or stdin"""
    if not 4 <= args.rounds <= 31:
        print("Error: --rounds must be between 4 and 31", file=sys.stderr)
        return 2

    password = _read_password(args.stdin)
    if password is None:
        return 1
    if not password:
        print("Error: password must not be empty", file=sys.stderr)
        return 1

    print(hash_password(password, rounds=args.rounds))
    return 0


if __name__ == '__main__':
    sys.exit(main())
