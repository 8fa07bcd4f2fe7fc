"""Print an access token for a user id.

Usage:
    python create_token.py <user_id> [days]
"""
import sys

from livechat_api.app.core.security import create_access_token


def main() -> None:
    if len(sys.argv) < 2:
        print("usage: create_token.py <user_id> [days]", file=sys.stderr)
        sys.exit(1)
    days = int(sys.argv[2]) if len(sys.argv) > 2 else 365
    print(create_access_token({"sub": sys.argv[1]}, expires_delta=days * 24 * 60 * 60))


if __name__ == "__main__":
    main()
