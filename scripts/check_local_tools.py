"""Exercise the MCP tools against a locally running server.

Uses the official MCP Python client for proper protocol handling. Note that
refresh_session spends one call of the daily YouTube budget.

Usage: python scripts/check_local_tools.py [--url http://localhost:8080/mcp] [--refresh]
"""

import argparse
import asyncio
import json
import sys
import traceback

from mcp import ClientSession
from mcp.client.streamable_http import streamablehttp_client

PASS = 0
FAIL = 0


def has_key(key):
    return lambda r: f"missing '{key}'" if key not in r else None

def key_in(key, allowed):
    return lambda r: f"{key}={r.get(key)!r} not in {allowed}" if r.get(key) not in allowed else None

def no_error():
    return lambda r: f"error: {r.get('error')}" if "error" in r else None


async def call_tool(session: ClientSession, tool_name: str, arguments: dict) -> dict:
    """Call an MCP tool and return parsed result."""
    result = await session.call_tool(tool_name, arguments)
    for item in result.content:
        if item.type == "text":
            try:
                return json.loads(item.text)
            except json.JSONDecodeError:
                return {"_raw_text": item.text}
    return {"_empty": True}


async def check_tool(session: ClientSession, name: str, tool: str, args: dict, checks: list) -> dict:
    """Run a single tool call with validation checks."""
    global PASS, FAIL
    try:
        result = await call_tool(session, tool, args)
        errors = [err for err in (check(result) for check in checks) if err]
        if errors:
            print(f"  FAIL {name}: {'; '.join(errors)}")
            FAIL += 1
        else:
            print(f"  PASS {name}")
            PASS += 1
        return result
    except Exception as e:
        print(f"  FAIL {name}: Exception: {e}")
        traceback.print_exc()
        FAIL += 1
        return {}


async def main(url: str, refresh: bool):
    global FAIL
    session_checks = [
        no_error(),
        has_key("session"),
        key_in("provenance", {"fresh", "cached", "fallback"}),
        key_in("state", {"succeeded", "degraded", "failed_hard"}),
    ]

    async with streamablehttp_client(url) as (read_stream, write_stream, _):
        async with ClientSession(read_stream, write_stream) as session:
            await session.initialize()
            tools_result = await session.list_tools()
            print(f"Available tools: {', '.join(t.name for t in tools_result.tools)}")

            before = await check_tool(session, "quota status", "session_quota", {},
                                      [no_error(), has_key("quota")])
            first = await check_tool(session, "get_session", "get_session", {}, session_checks)
            print(f"    -> {first.get('provenance')}: {first.get('session', {}).get('title')!r}"
                  f" ({first.get('diagnostic') or 'no diagnostic'})")

            second = await check_tool(session, "get_session again", "get_session", {}, session_checks)
            if first.get("provenance") == "fresh" and second.get("provenance") != "cached":
                print("  FAIL second get_session should be served from cache")
                FAIL += 1

            if refresh:
                await check_tool(session, "refresh_session", "refresh_session", {}, session_checks)

            after = await check_tool(session, "quota status after", "session_quota", {}, [no_error()])
            used_before = before.get("quota", {}).get("used", 0)
            used_after = after.get("quota", {}).get("used", 0)
            print(f"    -> API calls used today: {used_before} -> {used_after}")

    print(f"\nRESULTS: {PASS} passed, {FAIL} failed, {PASS + FAIL} total")
    if FAIL > 0:
        sys.exit(1)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--url", default="http://localhost:8080/mcp")
    parser.add_argument("--refresh", action="store_true", help="Also call refresh_session")
    args = parser.parse_args()
    asyncio.run(main(args.url, args.refresh))
