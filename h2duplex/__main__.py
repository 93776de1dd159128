"""A cleartext HTTP/2 server that echoes every request body back as it arrives.

Try it with:

  curl --http2-prior-knowledge http://localhost:<port> -T -

and type lines into curl's stdin.
"""

import argparse
import logging
import sys

import trio

from . import AcceptConfig, HTTP2Request, HTTP2Response, accept, serve


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="python -m h2duplex")
    parser.add_argument("--host", default="localhost")
    parser.add_argument("--port", type=int, default=0)
    parser.add_argument("--status", type=int, default=200)
    return parser.parse_args()


async def main(args: argparse.Namespace) -> None:
    config = AcceptConfig(status=args.status)

    async def echo(req: HTTP2Request, resp: HTTP2Response) -> None:
        conn = await accept(req, resp, config)

        async with conn:
            async for data in conn:
                await conn.send_all(data)

    async with trio.open_nursery() as nursery:
        await serve(nursery, echo, host=args.host, port=args.port)


if __name__ == "__main__":
    logging.basicConfig(stream=sys.stderr, level=logging.INFO)
    trio.run(main, _parse_args())
