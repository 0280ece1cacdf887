import argparse
from fastapi import FastAPI
from .api.routes import router
from .analysis.call_tree import walk
from .controller.pipeline import decode_file
from .datasets.mock_profile import create_sample_profile
from .evaluation.report import export_csv, format_summary, summarize
from .resolver.source_resolver import score
from .wire.errors import ProfileDecodeError
import json, pathlib, sys

def make_app():
    app = FastAPI(title="hotpath API")
    app.include_router(router)
    return app

# Create the app instance for uvicorn
app = make_app()

def _print_tree(data, max_depth):
    for depth, node in walk(data.call_tree):
        if depth >= max_depth:
            continue
        print(f"{'  ' * depth}{node.function_name} "
              f"[{node.file_name}:{node.line}] {node.total_percent:.2f}% "
              f"(self {node.self_percent:.2f}%)")

def _decode(args):
    try:
        data = decode_file(args.file)
    except ProfileDecodeError as e:
        print(json.dumps(e.describe(), indent=2), file=sys.stderr)
        return 2

    if args.json:
        print(data.model_dump_json(indent=2))
        return 0

    print(format_summary(summarize(data, args.top), args.top))
    print()
    for fn in data.top_functions[:args.top]:
        print(f"{fn.total_percent:6.2f}% {fn.self_percent:6.2f}%  {fn.name} ({fn.file_name}:{fn.start_line})")
    if args.tree_depth:
        print()
        _print_tree(data, args.tree_depth)
    if args.csv:
        export_csv(data, pathlib.Path(args.csv))
    return 0

def _resolve(args):
    match = score(args.path, args.function, args.candidates)
    if match is None:
        print(f"No match for {args.path}", file=sys.stderr)
        return 1
    print(match.model_dump_json(indent=2))
    return 0

def _mock(args):
    path = create_sample_profile(pathlib.Path(args.out))
    print(f"Wrote {path}")
    return 0

def _serve(args):
    import uvicorn
    uvicorn.run("hotpath.main:app", host=args.host, port=args.port)
    return 0

def _cli():
    p = argparse.ArgumentParser(prog="hotpath", description="pprof profile decoder")
    sub = p.add_subparsers(dest="command", required=True)

    d = sub.add_parser("decode", help="decode a .pb / .pb.gz profile")
    d.add_argument("file")
    d.add_argument("--json", action="store_true", help="print the full output model")
    d.add_argument("--top", type=int, default=10)
    d.add_argument("--csv", help="export function/line tables to this CSV path")
    d.add_argument("--tree-depth", type=int, default=0, help="print the call tree to this depth")
    d.set_defaults(func=_decode)

    r = sub.add_parser("resolve", help="pick the local file matching a profiled path")
    r.add_argument("path")
    r.add_argument("candidates", nargs="+")
    r.add_argument("--function")
    r.set_defaults(func=_resolve)

    m = sub.add_parser("mock", help="write a sample .pb.gz profile")
    m.add_argument("out")
    m.set_defaults(func=_mock)

    s = sub.add_parser("serve", help="run the HTTP API")
    s.add_argument("--host", default="127.0.0.1")
    s.add_argument("--port", type=int, default=8000)
    s.set_defaults(func=_serve)

    args = p.parse_args()
    sys.exit(args.func(args))

if __name__ == "__main__":
    _cli()
