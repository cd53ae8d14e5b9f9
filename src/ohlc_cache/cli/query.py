"""CLI to query a running ohlc_cache server.

Usage:
  ohlc-query health
  ohlc-query series AAPL daily --days 30 --head 5
  ohlc-query series MSFT weekly --start 2024-01-01T00:00:00Z
  ohlc-query symbols
  ohlc-query coverage AAPL
  ohlc-query refresh AAPL
  ohlc-query delete AAPL
  ohlc-query search apple --download --days 365
  ohlc-query warm AAPL MSFT NVDA --days 365
"""
import argparse
import json
import sys

import httpx


def print_json(data: object) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_health(client: httpx.Client, _: argparse.Namespace) -> int:
    r = client.get("/")
    r.raise_for_status()
    print_json(r.json())
    return 0


def cmd_series(client: httpx.Client, args: argparse.Namespace) -> int:
    params: dict[str, str | int] = {}
    if args.start:
        params["start"] = args.start
    if args.end:
        params["end"] = args.end
    if args.days:
        params["days"] = args.days
    if args.limit:
        params["limit"] = args.limit
    r = client.get(f"/series/{args.symbol}/{args.interval}", params=params)
    r.raise_for_status()
    data = r.json()
    bars = data["bars"]
    flag = " (partial)" if data.get("partial") else ""
    print(f"Found {len(bars)} {data['interval']} bars for {data['symbol']}{flag}")
    print_json(bars[: args.head] if args.head else bars)
    return 0


def cmd_symbols(client: httpx.Client, _: argparse.Namespace) -> int:
    r = client.get("/symbols")
    r.raise_for_status()
    data = r.json()
    print(f"{len(data)} cached symbols")
    print_json(data)
    return 0


def cmd_coverage(client: httpx.Client, args: argparse.Namespace) -> int:
    r = client.get(f"/symbols/{args.symbol}/coverage")
    r.raise_for_status()
    print_json(r.json())
    return 0


def cmd_refresh(client: httpx.Client, args: argparse.Namespace) -> int:
    r = client.post(f"/symbols/{args.symbol}/refresh")
    r.raise_for_status()
    print_json(r.json())
    return 0


def cmd_delete(client: httpx.Client, args: argparse.Namespace) -> int:
    r = client.delete(f"/symbols/{args.symbol}/data")
    r.raise_for_status()
    print_json(r.json())
    return 0


def cmd_search(client: httpx.Client, args: argparse.Namespace) -> int:
    params: dict[str, str | int] = {"q": args.query, "limit": args.limit}
    if args.download:
        params["download"] = "true"
    if args.days:
        params["days"] = args.days
    r = client.get("/symbols/search", params=params)
    r.raise_for_status()
    data = r.json()
    print(f"Found {len(data['results'])} symbols for '{data['query']}'")
    print_json(data)
    return 0


def cmd_warm(client: httpx.Client, args: argparse.Namespace) -> int:
    body: dict[str, object] = {"symbols": args.symbols}
    if args.start:
        body["start"] = args.start
    if args.end:
        body["end"] = args.end
    if args.days:
        body["days"] = args.days
    r = client.post("/symbols/warm", json=body)
    r.raise_for_status()
    reports = r.json()
    failed = [rep["symbol"] for rep in reports if rep["failed"]]
    print(f"Warmed {len(reports) - len(failed)}/{len(reports)} symbols")
    if failed:
        print(f"Incomplete: {', '.join(failed)}")
    print_json(reports)
    return 0


HANDLERS = {
    "health": cmd_health,
    "series": cmd_series,
    "symbols": cmd_symbols,
    "coverage": cmd_coverage,
    "refresh": cmd_refresh,
    "delete": cmd_delete,
    "search": cmd_search,
    "warm": cmd_warm,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Query an ohlc_cache server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--base-url",
        default="http://localhost:8001",
        help="API base URL (default: http://localhost:8001)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=60.0,
        help="Request timeout in seconds (default: 60)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True, help="Command")

    subparsers.add_parser("health", help="GET / health check")

    p = subparsers.add_parser("series", help="GET /series/{symbol}/{interval}")
    p.add_argument("symbol", help="Ticker (e.g. AAPL, MSFT)")
    p.add_argument("interval", help="daily, weekly or monthly (1d, 1wk, 1mo)")
    p.add_argument("--start", default=None, help="Range start, ISO 8601")
    p.add_argument("--end", default=None, help="Range end, ISO 8601 (default: now)")
    p.add_argument("--days", type=int, default=0, help="Days back from end when --start is omitted")
    p.add_argument("--limit", type=int, default=0, help="Server-side: keep only the last N bars")
    p.add_argument("--head", type=int, default=0, help="Show only first N bars (0 = all)")

    subparsers.add_parser("symbols", help="GET /symbols")
    for name, help_text in [
        ("coverage", "GET /symbols/{symbol}/coverage"),
        ("refresh", "POST /symbols/{symbol}/refresh"),
        ("delete", "DELETE /symbols/{symbol}/data"),
    ]:
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("symbol", help="Ticker")

    p = subparsers.add_parser("search", help="GET /symbols/search")
    p.add_argument("query", help="Ticker or company name")
    p.add_argument("--limit", type=int, default=10, help="Max results (default: 10)")
    p.add_argument("--download", action="store_true", help="Warm the cache for uncached hits")
    p.add_argument("--days", type=int, default=0, help="Days of history to warm")

    p = subparsers.add_parser("warm", help="POST /symbols/warm")
    p.add_argument("symbols", nargs="+", help="Tickers to warm")
    p.add_argument("--start", default=None, help="Range start, ISO 8601")
    p.add_argument("--end", default=None, help="Range end, ISO 8601 (default: now)")
    p.add_argument("--days", type=int, default=0, help="Days back from end when --start is omitted")
    return parser


def main(argv: list[str] | None = None, client: httpx.Client | None = None) -> int:
    args = build_parser().parse_args(argv)
    handler = HANDLERS[args.command]
    try:
        if client is not None:
            return handler(client, args)
        with httpx.Client(base_url=args.base_url.rstrip("/"), timeout=args.timeout) as http:
            return handler(http, args)
    except httpx.HTTPStatusError as e:
        print(f"HTTP error: {e.response.status_code}", file=sys.stderr)
        if e.response.content:
            try:
                print(e.response.json(), file=sys.stderr)
            except ValueError:
                print(e.response.text, file=sys.stderr)
        return 1
    except httpx.RequestError as e:
        print(f"Request error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
