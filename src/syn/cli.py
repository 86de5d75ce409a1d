from __future__ import annotations

import argparse
import asyncio
import json

from syn.chat_client import ChatClient
from syn.config import EnvSettings
from syn.errors import ChatError, ConfigError
from syn.logging import configure_logging


def _client(env: EnvSettings) -> ChatClient:
    try:
        key = env.require_api_key()
    except ConfigError as e:
        raise SystemExit(str(e)) from e
    return ChatClient(
        key,
        env.base_url,
        model=env.model,
        timeout_s=env.timeout_seconds,
        retry_cfg=env.retry_config(),
    )


async def _chat(env: EnvSettings, prompt: str, model: str | None) -> dict:
    async with _client(env) as client:
        res = await client.stream_chat(prompt, model=model)
    return {
        "content": res.content,
        "completion_tokens": res.usage.completion_tokens,
        "total_tokens": res.usage.total_tokens,
        "ttft_ms": res.ttft_ms,
    }


async def _models(env: EnvSettings) -> list[str]:
    async with _client(env) as client:
        return await client.list_models()


def _cmd_chat(args: argparse.Namespace) -> None:
    env = EnvSettings()
    configure_logging(env.log_level)
    try:
        out = asyncio.run(_chat(env, args.prompt, args.model))
    except ChatError as e:
        raise SystemExit(f"chat failed: {e}") from e
    if args.json:
        print(json.dumps(out, ensure_ascii=False, indent=2))
    else:
        print(out["content"])


def _cmd_models(args: argparse.Namespace) -> None:
    env = EnvSettings()
    configure_logging(env.log_level)
    try:
        ids = asyncio.run(_models(env))
    except ChatError as e:
        raise SystemExit(f"failed to list models: {e}") from e
    if args.json:
        print(json.dumps(ids, indent=2))
        return
    for mid in ids:
        print(mid)


def _cmd_eval(args: argparse.Namespace) -> None:
    from eval.cli import run_eval

    run_eval(args)


def _cmd_leaderboard(args: argparse.Namespace) -> None:
    from eval.cli import run_leaderboard

    configure_logging(EnvSettings().log_level)
    run_leaderboard(args)


def build_parser() -> argparse.ArgumentParser:
    from eval.cli import add_eval_arguments, add_leaderboard_arguments

    p = argparse.ArgumentParser(prog="syn", description="CLI client for the Synthetic chat API.")
    sub = p.add_subparsers(dest="cmd", required=True)

    pc = sub.add_parser("chat", help="Send one prompt and print the streamed answer.")
    pc.add_argument("prompt", type=str)
    pc.add_argument("--model", type=str, default=None, help="Model id or alias (default: SYN_MODEL).")
    pc.add_argument("--json", action="store_true", help="Print content plus token usage as JSON.")
    pc.set_defaults(func=_cmd_chat)

    pm = sub.add_parser("models", help="List available model ids.")
    pm.add_argument("--json", action="store_true")
    pm.set_defaults(func=_cmd_models)

    pe = sub.add_parser("eval", help="Evaluate key-insight extraction across models.")
    add_eval_arguments(pe)
    pe.set_defaults(func=_cmd_eval)

    pl = sub.add_parser("leaderboard", help="Print the leaderboard from run history (no model calls).")
    add_leaderboard_arguments(pl)
    pl.set_defaults(func=_cmd_leaderboard)
    return p


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
