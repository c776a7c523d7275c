"""
Development server for the Pocket Duel API.
Usage: python server.py [--host HOST] [--port PORT] [--reload]
"""

import argparse

import uvicorn


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the Pocket Duel API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", help="Restart on code changes")
    args = parser.parse_args()

    print(f"Serving Pocket Duel API at http://{args.host}:{args.port}")
    print(f"Interactive docs at http://{args.host}:{args.port}/docs")
    uvicorn.run("backend.api.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
