#!/usr/bin/env python3
"""
Setup Verification Script

Validates configuration and connections before running the bot.
Run this after setting up your .env file.

Usage:
    python scripts/verify_setup.py
"""

import asyncio
import os
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Load environment variables
from dotenv import load_dotenv
load_dotenv()


def print_header(title: str) -> None:
    """Print section header."""
    print(f"\n{'='*60}")
    print(f" {title}")
    print(f"{'='*60}")


def print_result(name: str, success: bool, message: str = "") -> None:
    """Print check result."""
    status = "[PASS]" if success else "[FAIL]"
    color = "\033[92m" if success else "\033[91m"
    reset = "\033[0m"
    msg = f" - {message}" if message else ""
    print(f"  {color}{status}{reset} {name}{msg}")


def mask(value: str) -> str:
    return f"{value[:4]}...{value[-4:]}" if len(value) > 12 else "***"


def check_env_file() -> bool:
    """Check if .env file exists."""
    env_path = project_root / ".env"
    exists = env_path.exists()
    if not exists:
        print_result(".env file", False, "File not found. Copy .env.example to .env")
    else:
        print_result(".env file", True, "Found")
    return exists


def check_required_vars() -> dict[str, bool]:
    """Check required environment variables."""
    results = {}

    required = [
        ("DATABASE_URL", "Required for PostgreSQL"),
        ("REDIS_URL", "Required for Redis"),
        ("WHATSAPP_VERIFY_TOKEN", "Required for the webhook handshake"),
    ]

    for var, description in required:
        value = os.getenv(var, "")

        if not value:
            print_result(var, False, f"Not set - {description}")
            results[var] = False
        elif var == "WHATSAPP_VERIFY_TOKEN" and value == "change-me":
            print_result(var, False, "Still using placeholder value")
            results[var] = False
        else:
            shown = mask(value) if "TOKEN" in var else value
            print_result(var, True, f"Set ({shown})")
            results[var] = True

    return results


def check_optional_vars() -> None:
    """Check optional environment variables."""
    optional = [
        ("APP_ENV", "development"),
        ("DEBUG", "false"),
        ("PORT", "8000"),
        ("DEFAULT_TIMEZONE", "Asia/Riyadh"),
        ("JOB_TIMEOUT_SECONDS", "120"),
        ("CLAUDE_INTENT_MODEL", "claude-3-5-haiku-20241022"),
    ]

    for var, default in optional:
        value = os.getenv(var, default)
        print_result(var, True, f"{value}")

    if os.getenv("WHATSAPP_APP_SECRET"):
        print_result("WHATSAPP_APP_SECRET", True, "Set (signatures verified)")
    else:
        print_result("WHATSAPP_APP_SECRET", False, "Not set - webhook signatures are not checked")

    if os.getenv("ANTHROPIC_API_KEY"):
        print_result("ANTHROPIC_API_KEY", True, f"Set ({mask(os.environ['ANTHROPIC_API_KEY'])})")
    else:
        print_result("ANTHROPIC_API_KEY", True, "Not set - keyword intent matching")


async def check_postgres() -> bool:
    """Verify PostgreSQL connection."""
    from app.infra.database import Database

    database = Database(os.getenv("DATABASE_URL"))
    try:
        healthy = await database.check_health()
    finally:
        await database.close()

    if healthy:
        print_result("PostgreSQL", True, "Connection successful")
    else:
        print_result("PostgreSQL", False, "Connection failed")
    return healthy


async def check_redis() -> bool:
    """Verify Redis connection."""
    from app.infra.redis import RedisClient

    redis = RedisClient(os.getenv("REDIS_URL"))
    try:
        await redis.connect()
        healthy = await redis.check_health()
    finally:
        await redis.close()

    if healthy:
        print_result("Redis", True, "Connection successful")
    else:
        print_result("Redis", False, "Connection failed (state kept in memory)")
    return healthy


async def check_anthropic() -> bool:
    """Verify the Anthropic API key works."""
    api_key = os.getenv("ANTHROPIC_API_KEY", "")

    try:
        from anthropic import AsyncAnthropic

        client = AsyncAnthropic(api_key=api_key)

        # Make a minimal API call to verify the key
        await client.messages.create(
            model=os.getenv("CLAUDE_INTENT_MODEL", "claude-3-5-haiku-20241022"),
            max_tokens=10,
            messages=[{"role": "user", "content": "Hi"}]
        )

        await client.close()

        print_result("Anthropic API", True, "Key validated successfully")
        return True

    except Exception as e:
        error_msg = str(e)
        if "authentication" in error_msg.lower() or "api_key" in error_msg.lower():
            print_result("Anthropic API", False, "Invalid API key")
        elif "rate" in error_msg.lower():
            print_result("Anthropic API", True, "Key valid (rate limited)")
            return True
        else:
            print_result("Anthropic API", False, error_msg[:50])
        return False


async def check_graph_api() -> bool:
    """Check that the WhatsApp Graph API host is reachable."""
    url = os.getenv("WHATSAPP_API_BASE_URL", "https://graph.facebook.com/v21.0")

    try:
        import httpx

        async with httpx.AsyncClient(timeout=5.0) as client:
            response = await client.get(url)

        # Any HTTP answer (usually 400 without a token) means the host is reachable
        print_result("WhatsApp API", True, f"Reachable at {url} ({response.status_code})")
        return True

    except Exception:
        print_result("WhatsApp API", False, f"Not reachable at {url}")
        return False


def check_dependencies() -> bool:
    """Check if required Python packages are installed."""
    required_packages = [
        "fastapi",
        "uvicorn",
        "pydantic",
        "pydantic_settings",
        "sqlalchemy",
        "asyncpg",
        "redis",
        "rq",
        "httpx",
        "anthropic",
    ]

    missing = []
    for package in required_packages:
        try:
            __import__(package)
        except ImportError:
            missing.append(package)

    if missing:
        print_result("Python packages", False, f"Missing: {', '.join(missing)}")
        return False
    else:
        print_result("Python packages", True, "All required packages installed")
        return True


async def main():
    """Run all verification checks."""
    print("\n" + "="*60)
    print(" Clinic Bot - Setup Verification")
    print("="*60)

    all_passed = True
    critical_failed = False

    print_header("Environment File")
    if not check_env_file():
        all_passed = False

    print_header("Python Dependencies")
    if not check_dependencies():
        all_passed = False
        critical_failed = True

    print_header("Required Environment Variables")
    var_results = check_required_vars()
    if not all(var_results.values()):
        all_passed = False
        if not var_results.get("DATABASE_URL"):
            critical_failed = True

    print_header("Optional Environment Variables")
    check_optional_vars()

    print_header("Service Connections")

    if var_results.get("DATABASE_URL"):
        if not await check_postgres():
            all_passed = False
            critical_failed = True
    else:
        print_result("PostgreSQL", False, "Skipped - DATABASE_URL not set")

    if var_results.get("REDIS_URL"):
        if not await check_redis():
            all_passed = False
    else:
        print_result("Redis", False, "Skipped - REDIS_URL not set")

    if os.getenv("ANTHROPIC_API_KEY"):
        if not await check_anthropic():
            all_passed = False

    if not await check_graph_api():
        all_passed = False

    print_header("Summary")

    if critical_failed:
        print("\n  \033[91mCRITICAL: Some required services failed.\033[0m")
        print("  Please fix the issues above before running the bot.")
        print()
        return 1
    elif not all_passed:
        print("\n  \033[93mWARNING: Some checks failed.\033[0m")
        print("  The bot may run with limited functionality.")
        print()
        return 0
    else:
        print("\n  \033[92mAll checks passed!\033[0m")
        print("  You can start the bot with:")
        print("    uvicorn app.main:app --reload")
        print("  and the reminder worker with:")
        print("    python -m app.worker")
        print()
        return 0


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
