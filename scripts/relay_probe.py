#!/usr/bin/env python3
"""
RS relay probe: check that a running relay is up and can reach the SMS vendor.

Usage:
  export RELAY_URL=https://your-relay.onrender.com
  python scripts/relay_probe.py            # /health only
  python scripts/relay_probe.py --sms      # also /api/sms/test (balance check)

Optional: RELAY_PROBE_TIMEOUT=10  (seconds per request, default 10)
"""

import os
import sys

try:
    import requests
except ImportError:
    print("Install requests: pip install requests", file=sys.stderr)
    sys.exit(1)

# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------
BASE_URL = os.getenv("RELAY_URL", "http://localhost:3001").rstrip("/")
TIMEOUT = int(os.getenv("RELAY_PROBE_TIMEOUT", "10"))


def check_health(base_url: str = BASE_URL) -> tuple[bool, str]:
    try:
        r = requests.get(f"{base_url}/health", timeout=TIMEOUT)
    except requests.RequestException as e:
        return False, f"request error: {e}"
    if r.status_code != 200:
        return False, f"HTTP {r.status_code}"
    data = r.json()
    flags = data.get("envVariablesDetected", {})
    missing = [k for k, v in flags.items() if not v]
    detail = f"service={data.get('service')} secretsFile={data.get('secretsFileDetected')}"
    if missing:
        detail += f" env-missing={','.join(missing)}"
    return bool(data.get("ok")), detail


def check_sms(base_url: str = BASE_URL) -> tuple[bool, str]:
    try:
        r = requests.get(f"{base_url}/api/sms/test", timeout=TIMEOUT)
    except requests.RequestException as e:
        return False, f"request error: {e}"
    if 200 <= r.status_code < 300:
        return True, r.text[:200]
    return False, f"HTTP {r.status_code}: {r.text[:200]}"


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    checks = [("health", check_health)]
    if "--sms" in argv:
        checks.append(("sms", check_sms))

    print(f"Relay probe → {BASE_URL}")
    failed = 0
    for name, fn in checks:
        ok, detail = fn(BASE_URL)
        print(f"[{'OK' if ok else 'FAIL'}] {name}: {detail}")
        if not ok:
            failed += 1
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
