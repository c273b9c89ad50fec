"""
Demo script — submits one analysis and polls it until it finishes.

Usage:
    python -m scripts.submit_analysis --token <JWT from the user service>
    python -m scripts.submit_analysis --token ... --name Ann --age 30 --description curious

The job stays "queued" until QStash fires the webhook (DISPATCH_DELAY_SECONDS,
60s by default), so expect roughly a minute of polling. BASE_URL must be
reachable from QStash for the callback to arrive (e.g. through a tunnel when
running locally).
"""

import argparse
import time

import httpx

BASE_URL = "http://localhost:8000"
TERMINAL = {"done", "failed"}


def submit(client: httpx.Client, name: str, age: int, description: str) -> str:
    resp = client.post("/analyze", json={"name": name, "age": age, "description": description})
    resp.raise_for_status()
    return resp.json()["request_id"]


def wait_for_result(client: httpx.Client, request_id: str, timeout: float = 180.0) -> dict:
    """Poll GET /analyze/{id} until the job is done or failed."""
    start = time.monotonic()
    last_status = None
    while time.monotonic() - start < timeout:
        resp = client.get(f"/analyze/{request_id}")
        resp.raise_for_status()
        data = resp.json()
        if data["status"] != last_status:
            print(f"  [{time.monotonic() - start:6.1f}s] {data['status']}")
            last_status = data["status"]
        if data["status"] in TERMINAL:
            return data
        time.sleep(2)
    raise TimeoutError(f"Analysis {request_id} didn't finish within {timeout}s")


def main():
    parser = argparse.ArgumentParser(description="Submit a personality analysis and wait for it")
    parser.add_argument("--token", required=True, help="bearer token issued by the user service")
    parser.add_argument("--base-url", default=BASE_URL)
    parser.add_argument("--name", default="Ann")
    parser.add_argument("--age", type=int, default=30)
    parser.add_argument("--description", default="curious, likes long walks and hard puzzles")
    args = parser.parse_args()

    client = httpx.Client(
        base_url=args.base_url,
        headers={"Authorization": f"Bearer {args.token}"},
        timeout=10.0,
    )

    request_id = submit(client, args.name, args.age, args.description)
    print(f"Submitted analysis {request_id}, waiting for the delayed callback...\n")

    data = wait_for_result(client, request_id)
    print()
    if data["status"] == "done":
        print(data["result"])
    else:
        print(f"Failed: {data['error']}")


if __name__ == "__main__":
    main()
