from __future__ import annotations

import argparse
import io
import time

import requests
from PIL import Image, ImageDraw


def make_image(background: str) -> bytes:
    img = Image.new('RGB', (800, 600), background)
    draw = ImageDraw.Draw(img)
    draw.rectangle((250, 150, 550, 450), fill='navy')
    out = io.BytesIO()
    img.save(out, format='JPEG', quality=95)
    return out.getvalue()


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument('--url', default='http://127.0.0.1:8000')
    parser.add_argument('--count', type=int, default=10)
    parser.add_argument('--background', default='white', help='white skips background removal')
    parser.add_argument('--sync', action='store_true', help='call /api/images/process instead of queueing')
    args = parser.parse_args()

    image = make_image(args.background)
    path = '/api/images/process' if args.sync else '/api/jobs/process-image'
    removed = 0
    started = time.time()

    for _ in range(args.count):
        resp = requests.post(
            f"{args.url}{path}",
            files={'file': ('bench.jpg', image, 'image/jpeg')},
            data={'owner_id': 'bench'},
            timeout=60,
        )
        resp.raise_for_status()
        if resp.headers.get('X-Background-Removed') == 'true':
            removed += 1

    elapsed = time.time() - started
    print({
        'submitted': args.count,
        'background_removed': removed,
        'elapsed_sec': round(elapsed, 2),
        'rps': round(args.count / elapsed, 2),
    })


if __name__ == '__main__':
    main()
