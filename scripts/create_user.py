import argparse

from app.db.session import session_scope
from app.repository.user_repo import ensure_user


# 在容器里运行：python -m scripts.create_user alice 'secret' --full-name "Alice" [--operator]
# （PYTHONPATH 需指向 backend/，保证能 import app）

def main(argv=None):
    parser = argparse.ArgumentParser(description="Create a fulfillment worker or operator account")
    parser.add_argument("username")
    parser.add_argument("password")
    parser.add_argument("--full-name", default=None)
    parser.add_argument("--operator", action="store_true", help="grant operator (is_superuser) rights")
    args = parser.parse_args(argv)

    with session_scope() as db:
        user, created = ensure_user(
            db, args.username, args.password,
            full_name=args.full_name, is_operator=args.operator,
        )
        role = "operator" if user.is_operator else "worker"
        print(f"{'Created' if created else 'User exists'}: id={user.id} username={user.username} role={role}")


if __name__ == "__main__":
    main()
