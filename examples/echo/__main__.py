"""An HTTP/2 server that uppercases the request body while sending a heartbeat.

Both directions run at once: one task reads the request body and echoes it
back in uppercase, another writes a heartbeat line every second. The
exchange ends when the client stops sending.

Expects a localhost.pem file in the workspace root.

After starting it up, try:

  curl --insecure --http2 https://localhost:<port> -T -

and type lines into curl's stdin. The --insecure option is needed because
the localhost certificate is self-signed. You can find the selected <port>
in this program's stderr output.
"""

import logging
import ssl

import trio

import h2duplex


async def heartbeat(
    conn: h2duplex.DuplexConnection,
    send_lock: trio.StrictFIFOLock,
) -> None:
    beat = 0
    while True:
        await trio.sleep(1)
        beat += 1
        async with send_lock:
            await conn.send_all(f"--- heartbeat {beat} ---\n".encode())


async def app(
    req: h2duplex.HTTP2Request,
    resp: h2duplex.HTTP2Response,
) -> None:
    conn = await h2duplex.accept(
        req,
        resp,
        h2duplex.AcceptConfig(headers=((b"content-type", b"text/plain"),)),
    )

    # Only one task may write at a time.
    send_lock = trio.StrictFIFOLock()

    async with conn:
        async with trio.open_nursery() as nursery:
            nursery.start_soon(heartbeat, conn, send_lock)

            async for data in conn:
                async with send_lock:
                    await conn.send_all(data.upper())

            nursery.cancel_scope.cancel()


async def main() -> None:
    logging.basicConfig(level=logging.INFO)

    ssl_context = ssl.create_default_context(purpose=ssl.Purpose.CLIENT_AUTH)
    ssl_context.load_cert_chain("localhost.pem")
    ssl_context.set_alpn_protocols(["h2"])

    async with trio.open_nursery() as nursery:
        await h2duplex.serve(
            nursery,
            app,
            host="localhost",
            port=0,
            ssl_context=ssl_context,
        )


if __name__ == "__main__":
    trio.run(main)
