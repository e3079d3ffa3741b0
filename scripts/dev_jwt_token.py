# scripts/dev_jwt_token.py
"""Issue a long-lived local token: python scripts/dev_jwt_token.py <user_id> [role ...]"""
import sys
from datetime import timedelta

from app.shared.utils.security import create_access_token


def main():
    subject = sys.argv[1] if len(sys.argv) > 1 else "moderator-dev"  # любой тестовый ID
    roles = sys.argv[2:] or ["moderator"]
    print(create_access_token(subject, roles, timedelta(days=30)))


if __name__ == "__main__":
    main()
