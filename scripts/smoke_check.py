#!/usr/bin/env python3
"""
Post-deploy smoke check for a BookStack environment.

Run by the pipeline after a stage deploys. Waits for the ECS service to settle
(when cluster and service are given), then checks that plain HTTP is redirected
to HTTPS and that the HTTPS endpoint answers with a 2xx/3xx status.
Exits with status 1 on any failure so the wave stops.
"""

import argparse
import logging
import os
import sys
from typing import Optional
from urllib.parse import urlsplit

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError, WaiterError

logger = logging.getLogger(__name__)

HEALTHY_STATUS = range(200, 400)


class SmokeCheckError(Exception):
    pass


def check_redirect(url: str, timeout: float = 10) -> None:
    """Plain HTTP must answer with a permanent redirect to HTTPS"""
    host = urlsplit(url).netloc
    response = requests.get(f"http://{host}/", allow_redirects=False, timeout=timeout)
    location = response.headers.get("Location", "")

    if response.status_code != 301:
        raise SmokeCheckError(
            f"http://{host}/ returned {response.status_code}, expected 301"
        )
    if not location.startswith(f"https://{host}"):
        raise SmokeCheckError(f"http://{host}/ redirects to {location!r}, expected HTTPS")

    logger.info("HTTP redirect OK: %s -> %s", host, location)


def check_https(url: str, path: str = "/", timeout: float = 10) -> int:
    response = requests.get(f"{url.rstrip('/')}{path}", timeout=timeout)
    if response.status_code not in HEALTHY_STATUS:
        raise SmokeCheckError(f"{url}{path} returned {response.status_code}")

    logger.info("HTTPS OK: %s%s (%s)", url, path, response.status_code)
    return response.status_code


def wait_for_service(
    cluster: str,
    service: str,
    region: Optional[str] = None,
    delay: int = 15,
    max_attempts: int = 40,
) -> None:
    """Block until ECS reports the service stable"""
    ecs = boto3.client("ecs", region_name=region)
    logger.info("Waiting for ECS service %s/%s to stabilize", cluster, service)
    ecs.get_waiter("services_stable").wait(
        cluster=cluster,
        services=[service],
        WaiterConfig={"Delay": delay, "MaxAttempts": max_attempts},
    )
    logger.info("ECS service %s/%s is stable", cluster, service)


def run(
    url: str,
    cluster: Optional[str] = None,
    service: Optional[str] = None,
    region: Optional[str] = None,
    path: str = "/",
) -> int:
    try:
        if cluster and service:
            wait_for_service(cluster, service, region)
        check_redirect(url)
        check_https(url, path)
    except (SmokeCheckError, requests.RequestException, WaiterError, BotoCoreError, ClientError) as e:
        logger.error("Smoke check failed for %s: %s", url, e)
        return 1

    logger.info("Smoke check passed for %s", url)
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--url", default=os.environ.get("APP_URL"), help="https://host of the deployment")
    parser.add_argument("--path", default="/", help="path checked over HTTPS")
    parser.add_argument("--cluster", default=os.environ.get("CLUSTER_NAME"))
    parser.add_argument("--service", default=os.environ.get("SERVICE_NAME"))
    parser.add_argument("--region", default=os.environ.get("AWS_REGION"))
    parser.add_argument("--log-level", default=os.environ.get("LOG_LEVEL", "INFO"))
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.url:
        parser.error("--url is required (or set APP_URL)")

    return run(args.url, cluster=args.cluster, service=args.service, region=args.region, path=args.path)


if __name__ == "__main__":
    sys.exit(main())
