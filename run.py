import sys

import uvicorn

from vaultmemo.core.config import settings


def main():
    # Usage: python run.py [vault|memo]
    kind = sys.argv[1] if len(sys.argv) > 1 else settings.APP_KIND
    if kind not in ("vault", "memo"):
        print(f"Unknown app kind '{kind}', expected 'vault' or 'memo'")
        sys.exit(1)

    # vaultmemo.main builds its app from this shared settings object
    settings.APP_KIND = kind

    if kind == "memo" and not (settings.ACCESS_PASSWORD and settings.ACCESS_UUID):
        print("⚠️  ACCESS_PASSWORD and ACCESS_UUID must be set for the memo app.")

    print("\n" + "=" * 60)
    print(f"🚀 SERVER STARTING: {kind}")
    print(f"🏠 Local:    http://127.0.0.1:{settings.PORT}")
    print(f"💾 Storage:  {settings.KV_BACKEND} ({settings.KV_PATH})")
    print("=" * 60 + "\n")

    uvicorn.run(
        "vaultmemo.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=False,
    )


if __name__ == "__main__":
    main()
