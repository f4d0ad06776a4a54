#!/usr/bin/env python3
import argparse
import json
import sys
from typing import Any, Iterable, Optional

import requests

DEFAULT_BASE_URL = 'http://127.0.0.1:8000/api'


def _url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


def _safe_json(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _format_chat(row: dict) -> str:
    return f"{row.get('id')}  {row.get('created_at', '')}  {row.get('title', '')}"


def _format_message(row: dict) -> str:
    role = str(row.get('role', '?'))
    return f"[{role}] {row.get('content', '')}"


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _write_stream(chunks: Iterable[str], out=sys.stdout) -> str:
    received: list[str] = []
    for chunk in chunks:
        if not chunk:
            continue
        received.append(chunk)
        out.write(chunk)
        out.flush()
    out.write('\n')
    return ''.join(received)


def _request(method: str, url: str, timeout: float, **kwargs) -> Optional[requests.Response]:
    try:
        response = requests.request(method, url, timeout=timeout, **kwargs)
    except requests.RequestException as exc:
        print(f"request failed: {exc}", file=sys.stderr)
        return None
    if response.status_code >= 400:
        print(f"{method} {url} -> {response.status_code}: {_safe_json(response) or response.text}", file=sys.stderr)
        return None
    return response


def cmd_new(args: argparse.Namespace) -> int:
    response = _request('POST', _url(args.base_url, '/chat'), args.timeout)
    if response is None:
        return 1
    _print_json(response.json())
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    response = _request('GET', _url(args.base_url, '/chats'), args.timeout)
    if response is None:
        return 1
    for row in response.json():
        print(_format_chat(row))
    return 0


def cmd_history(args: argparse.Namespace) -> int:
    response = _request('GET', _url(args.base_url, f'/chat/{args.chat_id}'), args.timeout)
    if response is None:
        return 1
    for row in response.json():
        print(_format_message(row))
    return 0


def cmd_send(args: argparse.Namespace) -> int:
    url = _url(args.base_url, f'/chat/{args.chat_id}/message')
    try:
        with requests.post(url, json={'content': args.content}, stream=True, timeout=(args.timeout, None)) as response:
            if response.status_code >= 400:
                print(f"POST {url} -> {response.status_code}: {_safe_json(response) or response.text}", file=sys.stderr)
                return 1
            _write_stream(response.iter_content(chunk_size=None, decode_unicode=True))
    except KeyboardInterrupt:
        stop = _request('POST', _url(args.base_url, f'/chat/{args.chat_id}/stop'), args.timeout)
        if stop is not None:
            print(f"\n{stop.json().get('status')}", file=sys.stderr)
        return 130
    except requests.RequestException as exc:
        print(f"request failed: {exc}", file=sys.stderr)
        return 1
    return 0


def cmd_stop(args: argparse.Namespace) -> int:
    response = _request('POST', _url(args.base_url, f'/chat/{args.chat_id}/stop'), args.timeout)
    if response is None:
        return 1
    _print_json(response.json())
    return 0


def cmd_rename(args: argparse.Namespace) -> int:
    response = _request('PUT', _url(args.base_url, f'/chat/{args.chat_id}'), args.timeout, json={'title': args.title})
    if response is None:
        return 1
    _print_json(response.json())
    return 0


def cmd_delete(args: argparse.Namespace) -> int:
    response = _request('DELETE', _url(args.base_url, f'/chat/{args.chat_id}'), args.timeout)
    if response is None:
        return 1
    _print_json(response.json())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Command line client for the local chat API.')
    parser.add_argument('--base-url', default=DEFAULT_BASE_URL)
    parser.add_argument('--timeout', type=float, default=10.0)
    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('new', help='create a chat').set_defaults(func=cmd_new)
    sub.add_parser('list', help='list chats, newest first').set_defaults(func=cmd_list)

    history = sub.add_parser('history', help='print the messages of a chat')
    history.add_argument('chat_id')
    history.set_defaults(func=cmd_history)

    send = sub.add_parser('send', help='send a message and print the streamed reply (Ctrl-C stops it)')
    send.add_argument('chat_id')
    send.add_argument('content')
    send.set_defaults(func=cmd_send)

    stop = sub.add_parser('stop', help='stop the active stream of a chat')
    stop.add_argument('chat_id')
    stop.set_defaults(func=cmd_stop)

    rename = sub.add_parser('rename', help='rename a chat')
    rename.add_argument('chat_id')
    rename.add_argument('title')
    rename.set_defaults(func=cmd_rename)

    delete = sub.add_parser('delete', help='delete a chat and its messages')
    delete.add_argument('chat_id')
    delete.set_defaults(func=cmd_delete)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == '__main__':
    raise SystemExit(main())
