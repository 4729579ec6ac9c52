#!/usr/bin/env python3
"""Example: Retry policies, error classification and operation waits."""

import threading

from cloudrpc import (
    ClientSettings,
    HttpError,
    RetryPolicy,
    RetryStrategy,
    ServiceClient,
    ServiceError,
    TransportError,
    WaitPolicy,
    WaitTimeoutError,
    Failure,
    classify,
    configure_logging,
)


def example_retry_policy():
    """Example: Using RetryPolicy."""
    print("=" * 60)
    print("Example 1: RetryPolicy with exponential backoff")
    print("=" * 60)

    retry_policy = RetryPolicy(
        max_attempts=5,
        initial_backoff=0.5,
        max_backoff=10.0,
        backoff_multiplier=2.0,
        strategy=RetryStrategy.EXPONENTIAL_BACKOFF,
        jitter=True,
    )

    print(f"\nRetry Policy:")
    print(f"  Max attempts: {retry_policy.max_attempts}")
    print(f"  Initial backoff: {retry_policy.initial_backoff}s")
    print(f"  Strategy: {retry_policy.strategy.value}")
    print(f"  Retryable codes: {sorted(retry_policy.retryable_codes)}")

    print("\nBackoff delays for each retry:")
    for attempt in range(retry_policy.max_attempts - 1):
        delay = retry_policy.get_backoff_delay(attempt)
        print(f"  Retry {attempt + 1}: ~{delay:.2f}s")


def example_classification():
    """Example: How failures are classified."""
    print("\n" + "=" * 60)
    print("Example 2: Error classification")
    print("=" * 60)

    failures = [
        HttpError(503, "Backend unavailable"),
        HttpError(412, "Precondition Failed", {"error": {
            "code": 412,
            "message": "generation mismatch",
            "errors": [{"reason": "conditionNotMet"}],
        }}),
        HttpError(404, "Not Found"),
        TransportError("connection reset by peer"),
    ]

    for failure in failures:
        for idempotent in (True, False):
            error = classify(failure, idempotent=idempotent)
            print(
                f"  {type(failure).__name__:<15} idempotent={idempotent!s:<5} -> "
                f"code={error.code} retryable={error.retryable} reason={error.reason}"
            )


def example_wait_for_operation(service: ServiceClient):
    """Example: Waiting on a long-running operation."""
    print("\n" + "=" * 60)
    print("Example 3: Waiting on an operation")
    print("=" * 60)

    instances = service.resource("projects/demo/zones/europe-west1-b/instances")
    poller = service.operations("projects/demo/zones/europe-west1-b/operations")

    try:
        instance = instances.get("worker-1")
        if instance is None:
            print("\nInstance worker-1 does not exist")
            return
        print(f"\nInstance: {instance.name} ({instance.get('status')})")

        operation_id = poller.operations.resource_id("operation-stop-worker-1")
        cancel = threading.Event()
        completion = poller.wait_for_completion(
            operation_id,
            WaitPolicy(check_every=1.0, timeout=60.0),
            cancel_event=cancel,
        )
        if completion is None:
            print("Operation was already cleaned up")
        elif isinstance(completion, Failure):
            for error in completion.errors:
                print(f"  Error {error.code}: {error.message}")
        else:
            print(f"Operation done at {completion.operation.end_time}")
    except WaitTimeoutError as e:
        print(f"Gave up waiting: {e}")
    except ServiceError as e:
        print(f"Call failed ({e.code}): {e.message}")


def main():
    """Run all examples."""
    settings = ClientSettings()
    configure_logging(verbose=settings.verbose, log_json=settings.log_json)

    example_retry_policy()
    example_classification()

    with ServiceClient.from_settings(settings) as service:
        example_wait_for_operation(service)

    print("\n" + "=" * 60)
    print("All examples completed!")
    print("=" * 60)


if __name__ == "__main__":
    main()
