#!/usr/bin/env python3
"""
Test runner script for local development
"""
import subprocess
import sys
import os

def main():
    """Run the test suite with a throwaway environment"""

    # Set test environment variables
    os.environ["LOG_LEVEL"] = "ERROR"  # Reduce log noise
    os.environ["JWT_SECRET"] = "test-secret"
    os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

    # Test commands to run
    commands = [
        # Run unit and API tests
        [sys.executable, "-m", "pytest", "tests/", "-v", "--tb=short"],

        # Test app import
        [sys.executable, "-c", "from mdpress.main import app; print('App imports successfully')"],
    ]

    print("Running test suite...")

    for i, cmd in enumerate(commands, 1):
        print(f"\nStep {i}/{len(commands)}: {' '.join(cmd[1:])}")

        try:
            subprocess.run(cmd, check=True, capture_output=False)
        except subprocess.CalledProcessError as e:
            print(f"Test failed with exit code {e.returncode}")
            sys.exit(e.returncode)

    print("\nAll tests passed successfully!")

if __name__ == "__main__":
    main()
