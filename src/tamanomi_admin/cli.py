from __future__ import annotations

import typer

from tamanomi_admin.app import create_app
from tamanomi_admin.config import Settings, configure_logging, ensure_dirs

cli = typer.Typer(add_completion=False)


def run_server(host: str | None, port: int | None) -> None:
    import uvicorn

    settings = Settings()
    configure_logging(settings.log_level)
    resolved_host = host or settings.host
    resolved_port = port if port is not None else settings.port
    uvicorn.run(create_app(settings), host=resolved_host, port=resolved_port)


@cli.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    host: str | None = typer.Option(None, help="バインドするアドレス"),
    port: int | None = typer.Option(None, help="バインドするポート"),
) -> None:
    ctx.obj = {"host": host, "port": port}
    if ctx.invoked_subcommand is None:
        run_server(host, port)


@cli.command()
def run(
    ctx: typer.Context,
    host: str | None = typer.Option(None, help="バインドするアドレス"),
    port: int | None = typer.Option(None, help="バインドするポート"),
) -> None:
    base = ctx.obj or {}
    resolved_host = host or base.get("host")
    resolved_port = port if port is not None else base.get("port")
    run_server(resolved_host, resolved_port)


@cli.command()
def purge_drafts() -> None:
    """期限切れの確認待ち下書きを削除する。"""
    from tamanomi_admin.drafts import init_draft_store

    settings = Settings()
    configure_logging(settings.log_level)
    ensure_dirs(settings)
    store = init_draft_store(settings)
    purge = getattr(store, "purge_expired", None)
    if purge is None:
        typer.echo("メモリ保存の下書きは削除対象がありません")
        return
    typer.echo(f"{purge()}件の下書きを削除しました")
