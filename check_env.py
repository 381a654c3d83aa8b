#!/usr/bin/env python3
"""Helper script to check and create the .env file for the upstream services."""

from pathlib import Path
import os

REQUIRED = ("ROUTEFLOW_OPTIMIZER_BASE_URL", "ROUTEFLOW_API_BASE_URL")


def _masked(line: str) -> str:
    if "ROUTEFLOW_API_ACCESS_TOKEN" in line and "=" in line:
        name, value = line.split("=", 1)
        value = value.strip()
        if len(value) > 20:
            return f"{name}={value[:12]}...{value[-6:]}"
    return line


def main():
    project_root = Path(__file__).parent
    env_file = project_root / ".env"

    print("=" * 60)
    print("Route Workflow Environment Checker")
    print("=" * 60)
    print()

    if env_file.exists():
        print(f"✅ Found .env file at: {env_file}")
        print()
        print("Current contents:")
        print("-" * 60)
        with open(env_file, "r", encoding="utf-8") as f:
            for line in f.read().split("\n"):
                print(_masked(line))
        print("-" * 60)
        print()
    else:
        print(f"❌ .env file NOT found at: {env_file}")
        print()
        print("Creating template .env file...")
        print()

        template = """# Multi-delivery optimization service (Required)
ROUTEFLOW_OPTIMIZER_BASE_URL=http://localhost:8001
# ROUTEFLOW_OPTIMIZER_PATH=/api/v1/routes/optimize-multi-delivery

# Operations backend storing orders, routes and drivers (Required)
ROUTEFLOW_API_BASE_URL=http://localhost:8080/api
# Fallback bearer token when requests carry no Authorization header
# ROUTEFLOW_API_ACCESS_TOKEN=

# Reverse geocoding (Optional - defaults to the public Nominatim instance)
# ROUTEFLOW_GEOCODER_BASE_URL=https://nominatim.openstreetmap.org

# API Configuration
ROUTEFLOW_API_PREFIX=/api
# ROUTEFLOW_FRONTEND_ALLOWED_ORIGINS - Leave commented to use defaults
# If you need to override, use JSON array format: ["http://localhost:5173","http://127.0.0.1:5173"]
# Or comma-separated: http://localhost:5173,http://127.0.0.1:5173

# Route archive (Optional)
ROUTEFLOW_DATA_ROOT=./data
ROUTEFLOW_ARCHIVE_SAVED_ROUTES=false
"""

        with open(env_file, "w", encoding="utf-8") as f:
            f.write(template)

        print(f"✅ Created .env file at: {env_file}")
        print()
        print("⚠️  Please edit .env and point it at your optimizer and backend!")
        print()
        return

    print("Checking environment variables...")
    print()
    for name in REQUIRED:
        value = os.getenv(name)
        if value:
            print(f"✅ {name} (from environment): {value}")
        else:
            print(f"❌ {name} not found in environment")
    print()

    print("Testing config loading...")
    print()

    try:
        import sys
        sys.path.insert(0, str(project_root / "src"))
        from routeflow.config import settings

        configured = True
        for label, value in (
            ("OPTIMIZER_BASE_URL", settings.optimizer_base_url),
            ("API_BASE_URL", settings.api_base_url),
        ):
            if value:
                print(f"✅ Config loaded {label}: {value}")
            else:
                print(f"❌ Config {label} is None")
                configured = False
        print(f"   Geocoder: {settings.geocoder_base_url}")
        print(f"   Archive saved routes: {settings.archive_saved_routes} ({settings.data_root})")
        print()

        if configured:
            print("=" * 60)
            print("✅ SUCCESS: Upstream services are configured!")
            print("=" * 60)
        else:
            print("=" * 60)
            print("❌ ERROR: Upstream services are NOT configured")
            print("=" * 60)
            print()
            print("Troubleshooting:")
            print("1. Make sure .env file exists in project root")
            print("2. Make sure variables start with ROUTEFLOW_ prefix")
            print("3. Make sure there are no spaces around = sign")
            print("4. Restart backend after editing .env")
            print()
    except Exception as e:
        print(f"❌ Error loading config: {e}")
        print()
        print("Make sure you're running this from the project root directory")


if __name__ == "__main__":
    main()
