"""Batch runner - triggers offer verification on a running API over HTTP."""

import argparse
import logging
import os
import time
from typing import Any, Dict, Optional

import requests

BACKEND_HOST = os.getenv("BACKEND_HOST")
ADMIN_API_TOKEN = os.getenv("ADMIN_API_TOKEN")
BATCH_RUNNER_INTERVAL_HOURS = os.getenv("BATCH_RUNNER_INTERVAL_HOURS")

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)


def trigger_batch(
    backend_host: str,
    admin_token: str,
    product_type: Optional[str] = None,
    limit: Optional[int] = None,
    force: bool = True,
    timeout: float = 600.0,
) -> Dict[str, Any]:
    """
    Ask the API to verify offers and return its batch summary.

    Args:
        backend_host (str): ``host:port`` of the running API.
        admin_token (str): Bearer token accepted by the admin endpoints.
        product_type (str): Optional product type filter.
        limit (int): Optional cap on the number of offers verified.

    Returns:
        dict: The ``result`` object of the batch response.
    """
    url = f"http://{backend_host}/admin/offers/verify-batch"
    payload: Dict[str, Any] = {"force": force}
    if product_type:
        payload["type"] = product_type
    if limit:
        payload["limit"] = limit

    response = requests.post(
        url,
        json=payload,
        headers={"Authorization": f"Bearer {admin_token}"},
        timeout=timeout,
    )
    response.raise_for_status()
    return response.json().get("result", {})


def run(product_type: Optional[str], limit: Optional[int], every_hours: float) -> None:
    """Trigger one batch, or one every ``every_hours`` when positive."""
    assert (
        BACKEND_HOST is not None
    ), "Variable BACKEND_HOST from env file shouldn't be None, fill in the credential."
    assert (
        ADMIN_API_TOKEN is not None
    ), "Variable ADMIN_API_TOKEN from env file shouldn't be None, fill in the credential."

    while True:
        try:
            result = trigger_batch(BACKEND_HOST, ADMIN_API_TOKEN, product_type, limit)
            logging.info(
                "Batch finished: attempted=%s verified=%s failed=%s skipped=%s",
                result.get("attempted"),
                result.get("verified"),
                result.get("failed"),
                result.get("skipped"),
            )
        except requests.RequestException as exc:
            logging.error("Batch verification request failed: %s", exc)

        if every_hours <= 0:
            return
        logging.debug("Waiting %.1fh before the next batch.", every_hours)
        time.sleep(every_hours * 3600)


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--type", default=None, help="Product type filter.")
    parser.add_argument("--limit", type=int, default=None, help="Max offers to verify.")
    parser.add_argument(
        "--every-hours",
        type=float,
        default=float(BATCH_RUNNER_INTERVAL_HOURS or 0),
        help="Repeat interval; 0 runs a single batch.",
    )
    args = parser.parse_args()
    run(args.type, args.limit, args.every_hours)
