#!/usr/bin/env python3
"""
Development smoke test for the Snow Shield backend.

Verifies that a running backend answers basic API calls. Run it after
starting the server in development mode.

Usage:
    python scripts/dev_smoke.py [base_url]

Exit codes:
    0 - All checks passed
    1 - One or more checks failed
"""
import sys
import time
import uuid

import requests


def _check(label, func):
    print(label)
    try:
        ok, detail = func()
    except requests.exceptions.ConnectionError:
        print("  ✗ FAIL - Connection refused. Is the backend running?")
        return False
    except Exception as e:
        print(f"  ✗ FAIL - Error: {e}")
        return False
    print(f"  {'✓ PASS' if ok else '✗ FAIL'} - {detail}")
    return ok


def run_smoke_tests(base_url: str = "http://127.0.0.1:8000") -> bool:
    """Run smoke checks against the backend."""
    print("=" * 60)
    print("Snow Shield Backend - Development Smoke Test")
    print("=" * 60)
    print(f"Testing backend at: {base_url}")
    print()

    state = {}

    def health():
        response = requests.get(f"{base_url}/", timeout=5)
        return response.status_code == 200, f"Status: {response.status_code} {response.json()}"

    def signup():
        payload = {
            "email": f"smoke-{uuid.uuid4().hex[:8]}@example.com",
            "password": "smoke-test-password",
            "name": "Smoke Test",
            "pincode": "12345",
        }
        response = requests.post(f"{base_url}/api/auth/signup", json=payload, timeout=10)
        if response.status_code == 201:
            state["token"] = response.json()["token"]
        return response.status_code == 201, f"Status: {response.status_code}"

    def dashboard():
        if "token" not in state:
            return False, "Skipped: no session token"
        headers = {"Authorization": f"Bearer {state['token']}"}
        response = requests.get(f"{base_url}/api/dashboard", headers=headers, timeout=10)
        if response.status_code != 200:
            return False, f"Status: {response.status_code} {response.text[:200]}"
        data = response.json()
        return True, f"{len(data['incidents'])} incidents, {len(data['warnings'])} warnings"

    def docs():
        response = requests.get(f"{base_url}/docs", timeout=5)
        return response.status_code == 200, f"API docs available at {base_url}/docs"

    results = [
        _check("[1/4] Health check (GET /)...", health),
        _check("[2/4] Sign up (POST /api/auth/signup)...", signup),
        _check("[3/4] Dashboard (GET /api/dashboard)...", dashboard),
        _check("[4/4] API docs (GET /docs)...", docs),
    ]

    passed = sum(results)
    print()
    print("=" * 60)
    print(f"Results: {passed} passed, {len(results) - passed} failed")
    print("=" * 60)
    return all(results)


if __name__ == "__main__":
    # Give backend a moment to fully start if just launched
    print("Waiting 2 seconds for backend to be ready...")
    time.sleep(2)
    print()

    url = sys.argv[1] if len(sys.argv) > 1 else "http://127.0.0.1:8000"
    sys.exit(0 if run_smoke_tests(url) else 1)
