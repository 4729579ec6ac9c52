#!/usr/bin/env python3
"""Example: Listing and batch requests."""

from cloudrpc import (
    BatchRequest,
    BatchProgress,
    CallOptions,
    ClientSettings,
    ServiceClient,
    configure_logging,
)

BUCKET_OBJECTS = "b/demo-bucket/o"


def print_progress(progress: BatchProgress):
    print(
        f"\r  {progress.percent_complete:5.1f}% "
        f"({progress.completed} ok, {progress.failed} failed, {progress.pending} pending)",
        end="",
        flush=True,
    )
    if progress.is_complete:
        print()


def example_listing(service: ServiceClient):
    """Example: Walking a paged listing."""
    print("=" * 60)
    print("Example 1: Listing objects page by page")
    print("=" * 60)

    blobs = service.resource(BUCKET_OBJECTS)
    listing = blobs.list(CallOptions.builder().page_size(50).fields("items(name,size)", "nextPageToken").build())

    for i, blob in enumerate(listing):
        print(f"  {blob.name} ({blob.get('size')} bytes)")
        if i >= 19:
            print("  ... stopping early")
            break

    print(f"\nFetched {listing.page_count} page(s)")


def example_batch(service: ServiceClient):
    """Example: Updating, deleting and reading objects in one batch."""
    print("\n" + "=" * 60)
    print("Example 2: Batch request")
    print("=" * 60)

    blobs = service.resource(BUCKET_OBJECTS)
    first = blobs.get("report-1.csv")
    if first is None:
        print("\nreport-1.csv does not exist")
        return

    request = (
        BatchRequest.builder()
        .update(first.with_data(contentType="text/csv"))
        .delete(blobs.resource_id("report-2.csv"), CallOptions(if_generation_match=42))
        .get(first.resource_id)
        .build()
    )

    with service.batch(BUCKET_OBJECTS) as executor:
        response = executor.apply(request, progress_callback=print_progress)

    print(f"\nStatus: {response.status.value} in {response.total_time:.2f}s")
    for label, results in (
        ("update", response.updates),
        ("delete", response.deletes),
        ("get", response.gets),
    ):
        for result in results:
            if result.failed:
                print(f"  {label}: failed ({result.error.code}) {result.error.message}")
            else:
                print(f"  {label}: {result.value}")


def main():
    """Run all examples."""
    settings = ClientSettings()
    configure_logging(verbose=settings.verbose, log_json=settings.log_json)

    with ServiceClient.from_settings(settings) as service:
        example_listing(service)
        example_batch(service)


if __name__ == "__main__":
    main()
