from __future__ import annotations

import argparse
import json
import logging

from sample_catalog.config import settings


def main() -> None:
    parser = argparse.ArgumentParser(description="Re-run the image pipeline over stored sample photos")
    parser.add_argument("--prefix", default=settings.storage_prefix)
    args = parser.parse_args()

    logging.basicConfig(level=settings.log_level)
    # Imported late so storage is only initialised once logging is configured.
    from sample_catalog.tasks.image_jobs import reprocess_images_job

    result = reprocess_images_job(args.prefix)
    print(json.dumps(result, indent=2))


if __name__ == "__main__":
    main()
