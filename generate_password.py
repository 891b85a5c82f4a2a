"""Print a bcrypt hash to paste into config.json as "passwordHash".

Usage: python generate_password.py <your-password>
"""
import sys

import bcrypt


def hash_password(password: str, rounds: int = 10) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        print("Usage: python generate_password.py <your-password>", file=sys.stderr)
        print("Example: python generate_password.py mySecretPassword123", file=sys.stderr)
        return 1

    print("\nGenerated password hash:")
    print(hash_password(argv[0]))
    print('\nAdd this to your config.json as "passwordHash"')
    return 0


if __name__ == "__main__":
    sys.exit(main())
