import argparse
import asyncio
import json
import logging
import sys

from .core import Lens
from .models import LensError

LOGGER = logging.getLogger("lens_ocr")


async def _scan(target: str, options: dict):
    async with Lens(options) as lens:
        if target.startswith(("http://", "https://")):
            return await lens.scan_by_url(target)
        return await lens.scan_by_file(target)


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(prog="lens_ocr", description="OCR an image with Google Lens")
    ap.add_argument("target", help="image URL or local file path")
    ap.add_argument("--chrome-version", default=None)
    ap.add_argument("--cookie", default=None, help="seed cookies, 'name=value; name2=value2'")
    ap.add_argument("--debug", action="store_true")
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    options = {}
    if args.chrome_version:
        options["chrome_version"] = args.chrome_version
    if args.cookie:
        options["headers"] = {"cookie": args.cookie}

    try:
        result = asyncio.run(_scan(args.target, options))
    except LensError as e:
        LOGGER.error("lens failed: %s", e.message)
        print(f"{e.message} (status={e.code})", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        print(str(e), file=sys.stderr)
        return 1

    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
