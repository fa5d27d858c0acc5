"""
Setup verification script for the handbook backend.
Checks all dependencies and services are properly configured.
"""
import asyncio
import sys
import os
from typing import List, Tuple

# Color codes for terminal output
GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
BLUE = "\033[94m"
RESET = "\033[0m"


def print_status(message: str, status: bool):
    """Print colored status message."""
    symbol = f"{GREEN}✓{RESET}" if status else f"{RED}✗{RESET}"
    print(f"{symbol} {message}")


async def check_python_version() -> bool:
    """Check Python version is 3.10+."""
    version = sys.version_info
    if version.major == 3 and version.minor >= 10:
        print_status(f"Python version: {version.major}.{version.minor}.{version.micro}", True)
        return True
    else:
        print_status(f"Python version {version.major}.{version.minor} (requires 3.10+)", False)
        return False


async def check_dependencies() -> bool:
    """Check if required packages are installed."""
    required_packages = [
        "fastapi",
        "uvicorn",
        "multipart",
        "sqlalchemy",
        "asyncpg",
        "pydantic_settings",
        "httpx",
        "aiofiles",
        "fitz",
        "jwt",
        "bcrypt",
    ]

    all_installed = True
    for package in required_packages:
        try:
            __import__(package)
            print_status(f"Package '{package}' installed", True)
        except ImportError:
            print_status(f"Package '{package}' missing", False)
            all_installed = False

    return all_installed


async def check_env_file() -> bool:
    """Check if .env file exists and JWT_SECRET is set."""
    from app.config import settings

    has_env = os.path.exists(".env")
    print_status(".env file exists" if has_env else ".env file missing", has_env)

    has_secret = bool(settings.JWT_SECRET)
    print_status(f"JWT_SECRET: {'Set' if has_secret else 'Missing'}", has_secret)
    return has_secret


async def check_object_store() -> bool:
    """Check the configured object store backend is reachable."""
    from app.config import settings
    from app.services.object_store import ConfigurationError, build_object_store

    backend = settings.OBJECT_STORE_BACKEND.lower()
    if backend == "local":
        os.makedirs(settings.UPLOAD_DIR, exist_ok=True)

    try:
        store = build_object_store(settings)
    except ConfigurationError as e:
        print_status(f"Object store ({backend}): {e}", False)
        return False

    ok = await store.check()
    print_status(f"Object store ({backend}): {'Reachable' if ok else 'Unreachable'}", ok)
    if not ok and backend == "supabase":
        print(f"  {YELLOW}Check SUPABASE_URL, the service-role key and bucket '{settings.SUPABASE_UPLOAD_BUCKET}'{RESET}")
    return ok


async def check_xai() -> bool:
    """Check whether the remote model is configured and answers."""
    from app.services.llm_client import ChatMessage, XaiChatClient

    client = XaiChatClient()
    if not client.configured:
        print_status("XAI_API_KEY not set (chat and handbooks will use local fallbacks)", False)
        return False

    result = await client.generate([ChatMessage("user", "Reply with the single word: ok")])
    if result.ok:
        print_status(f"xAI model '{client.model}' responded", True)
        return True

    print_status(f"xAI call failed: {result.error}", False)
    return False


async def check_database() -> bool:
    """Check the database is reachable with DATABASE_URL."""
    from sqlalchemy import text

    from app.config import settings
    from app.database import create_engine

    engine = create_engine(settings.DATABASE_URL)
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        print_status("Database connection successful", True)
        return True

    except Exception as e:
        print_status(f"Database connection failed: {str(e)}", False)
        print(f"  {YELLOW}Check DATABASE_URL and that PostgreSQL is running{RESET}")
        return False
    finally:
        await engine.dispose()


async def main():
    """Run all verification checks."""
    print(f"\n{BLUE}{'='*60}{RESET}")
    print(f"{BLUE}Handbook Backend - Setup Verification{RESET}")
    print(f"{BLUE}{'='*60}{RESET}\n")

    checks: List[Tuple[str, callable]] = [
        ("Python Version", check_python_version),
        ("Dependencies", check_dependencies),
        ("Environment", check_env_file),
        ("Database", check_database),
        ("Object Store", check_object_store),
        ("xAI Model", check_xai),
    ]

    results = []

    for check_name, check_func in checks:
        print(f"\n{BLUE}Checking {check_name}...{RESET}")
        try:
            result = await check_func()
            results.append(result)
        except Exception as e:
            print_status(f"Error during check: {str(e)}", False)
            results.append(False)

    # Summary
    print(f"\n{BLUE}{'='*60}{RESET}")
    passed = sum(results)
    total = len(results)

    if passed == total:
        print(f"{GREEN}✓ All checks passed! ({passed}/{total}){RESET}")
        print(f"\n{GREEN}You're ready to run the backend:{RESET}")
        print(f"  uvicorn app.main:app --reload")
    else:
        print(f"{RED}✗ Some checks failed ({passed}/{total} passed){RESET}")
        print(f"\n{YELLOW}Please fix the issues above before running the backend.{RESET}")
        sys.exit(1)

    print(f"{BLUE}{'='*60}{RESET}\n")


if __name__ == "__main__":
    asyncio.run(main())
