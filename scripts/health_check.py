"""Health check script for all environments"""
import asyncio
import os

import httpx

from app.core.config import settings


async def check_health():
    urls = {
        "local": "http://localhost:8001/health",
        "dev": "http://localhost:8000/health",
        "staging": "https://staging-moderation.internal/health",
        "prod": "https://moderation.internal/health",
    }

    env = settings.ENVIRONMENT.value
    url = os.getenv("HEALTH_URL") or urls.get(env)
    if not url:
        print(f"Unknown environment: {env}")
        return False

    try:
        async with httpx.AsyncClient(timeout=5.0) as client:
            response = await client.get(url)
            data = response.json()

            print(f"Environment: {env}")
            print(f"Status: {data['status']}")
            print("Services:")
            for service, status in data["services"].items():
                emoji = "✅" if status else "❌"
                print(f"  {emoji} {service}: {status}")

            return data["status"] == "healthy"

    except httpx.HTTPError as e:
        print(f"❌ Health check failed: {e}")
        return False


if __name__ == "__main__":
    ok = asyncio.run(check_health())
    raise SystemExit(0 if ok else 1)
