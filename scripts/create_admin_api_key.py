"""Bootstrap an API key directly in the database.

Needed once per environment: the /apikeys routes themselves require an admin key.
"""
import argparse

from app.db import get_sessionmaker
from app.models.api_key import ApiKey, ApiScope
from app.utils.apikey import gen_key


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--name", default="bootstrap-admin-key")
    parser.add_argument("--scope", choices=[scope.value for scope in ApiScope], default=ApiScope.admin.value)
    parser.add_argument("--user-id", type=int, default=None, help="buyer keys must name their user")
    args = parser.parse_args()

    scope = ApiScope(args.scope)
    if scope == ApiScope.buyer and args.user_id is None:
        parser.error("--user-id is required for buyer keys")

    raw, prefix, key_hash = gen_key()
    db = get_sessionmaker()()
    try:
        api_key = ApiKey(
            name=args.name,
            prefix=prefix,
            key_hash=key_hash,
            scope=scope,
            user_id=args.user_id,
            is_active=True,
        )
        db.add(api_key)
        db.commit()
        db.refresh(api_key)

        print("==========================================")
        print(f"API key created (id={api_key.id}, scope={api_key.scope.value})")
        print("It is shown only once. Use it as:")
        print(f"    Authorization: Bearer {raw}")
        print("==========================================")
    finally:
        db.close()


if __name__ == "__main__":
    main()
