"""CLI entry point for the payment gateway server."""

import argparse


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="paygate-server",
        description="Payment gateway for LND (on-chain + Lightning) and Liquid nodes",
    )
    parser.add_argument("--host", default=None, help="Bind host (default: PAYGATE_HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default: PAYGATE_PORT or 3000)")
    args = parser.parse_args(argv)

    import uvicorn

    from paygate.config import Settings
    from paygate.main import create_app

    settings = Settings()
    uvicorn.run(
        create_app(settings),
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
