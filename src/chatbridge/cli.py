from __future__ import annotations
from pathlib import Path
from typing import Optional
import typer

from .bootstrap import build_app
from .core.chat_session import ChatSession
from .core.errors import ProviderError
from .utils.log import setup_logging

app = typer.Typer(add_completion=False)

SYSTEM_PROMPT = "You're a helpful AI."


def _context(ctx: typer.Context):
    opts = ctx.obj or {}
    app_ctx = build_app(opts["config"], model=opts.get("model"), endpoint=opts.get("endpoint"))
    # --log-level wins over logging.level in the config file
    level = opts.get("log_level") or (app_ctx["cfg"].get("logging") or {}).get("level")
    setup_logging(level or "WARNING")
    return app_ctx


@app.callback(invoke_without_command=True)
def chat(
    ctx: typer.Context,
    config: Path = Path("config/default.yaml"),
    model: Optional[str] = typer.Option(None, help="Model id; overrides config and OLLAMA_MODEL."),
    endpoint: Optional[str] = typer.Option(None, help="Ollama endpoint; overrides config and OLLAMA_BASE_URL."),
    log_level: Optional[str] = typer.Option(None, help="DEBUG, INFO, WARNING or ERROR."),
):
    ctx.obj = {"config": config, "model": model, "endpoint": endpoint, "log_level": log_level}
    if ctx.invoked_subcommand is not None:
        return

    app_ctx = _context(ctx)
    cfg = app_ctx["cfg"] or {}
    provider = app_ctx["provider"]
    for w in app_ctx["warnings"]:
        print(f"[info] {w['message']}")

    session = ChatSession(model=provider, system_prompt=SYSTEM_PROMPT)

    runtime = cfg.get("runtime") or {}
    use_stream = bool(runtime.get("stream", False))

    print("chatbridge. Type /help for commands. Ctrl+C to quit.")
    try:
        _repl(session, provider, use_stream)
    finally:
        _close(provider)


def _close(provider) -> None:
    close = getattr(provider, "close", None)
    if callable(close):
        close()


def _repl(session: ChatSession, provider, use_stream: bool) -> None:
    while True:
        try:
            user_input = input("> ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nBye.")
            return

        if not user_input:
            continue

        if user_input in ("/exit", "/quit"):
            print("Bye.")
            return

        if user_input == "/help":
            print("Commands: /help, /model, /exit, /quit")
            continue

        if user_input == "/model":
            print(getattr(provider, "model", "unknown"))
            continue

        # Normal turn
        try:
            if use_stream:
                gen = session.run_turn_stream(user_input)
                try:
                    for piece in gen:
                        print(piece, end="", flush=True)
                    print("")
                except KeyboardInterrupt:
                    # Releases the connection and keeps the partial reply
                    gen.close()
                    print("\n[stream interrupted]")
            else:
                result = session.run_turn(user_input)
                print(result.text)
                for call in result.turn.tool_calls:
                    print(f"[tool call] {call.name}({call.args})")
        except ProviderError as e:
            print(f"[error] {e}")
            continue

        for advisory in session.last_advisories:
            print(f"[warning] {advisory.message}")


@app.command()
def models(ctx: typer.Context, tools_only: bool = typer.Option(False, "--tools-only")):
    """List installed models and whether they support tool calling."""
    provider = _context(ctx)["provider"]
    if not hasattr(provider, "list_models"):
        print("This provider cannot list models.")
        raise typer.Exit(code=1)
    try:
        names = provider.list_models()
    except ProviderError as e:
        print(f"[error] {e}")
        raise typer.Exit(code=1)

    capabilities = provider.capabilities
    for name in names:
        supported = capabilities.supports_tools(name)
        if tools_only and not supported:
            continue
        mark = "tools" if supported else "-"
        print(f"{name:<32} {mark}")


@app.command()
def status(ctx: typer.Context):
    """Check whether the backend is reachable."""
    provider = _context(ctx)["provider"]
    probe = getattr(provider, "is_available", None)
    if probe is None:
        print("This provider has no availability probe.")
        return
    if probe():
        print(f"Reachable: {provider.endpoint}")
        return
    print(f"Not reachable: {provider.endpoint}. Start it with: ollama serve")
    raise typer.Exit(code=1)
