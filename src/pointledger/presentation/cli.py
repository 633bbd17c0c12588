import asyncio, signal
import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from ..adapters.ledger_sqlalchemy import SqlAlchemyLedger
from ..adapters.pools_json import load_pools
from ..adapters.rpc_httpx import connect
from ..application.points import PointsCalculator
from ..application.use_cases import ScannerFleet, backfill, resolve_contracts
from ..config import Settings, load_settings
from ..domain.errors import AccountNotFound, PointLedgerError
from ..domain.models import WatchedContract
from ..logging_setup import setup_logging
from .api import create_app, start_api_server

app = typer.Typer(help="pointledger: Transfer-event balance ledger and points API.")
console = Console()


def _settings() -> Settings:
    try:
        s = load_settings()
    except PointLedgerError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(code=2)
    setup_logging(s.log_level, s.log_file)
    return s


async def _serve(s: Settings) -> None:
    pools = load_pools(s.pools_path)
    client = await connect(s.rpc_url)
    ledger = SqlAlchemyLedger(s.database_url)
    try:
        await ledger.init_schema()
        contracts = await resolve_contracts(s.watched(), s.start_block, ledger)

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)

        fleet = ScannerFleet(contracts, client, ledger, cursors=ledger, policy=s.scan_policy(), stop=stop)
        runner = await start_api_server(create_app(PointsCalculator(ledger, pools), fleet), s.api_host, s.api_port)
        logger.info("Starting listener...")
        scanning = asyncio.create_task(fleet.run())
        stopping = asyncio.create_task(stop.wait())
        try:
            # a scanner crash ends the run as well as a signal does
            await asyncio.wait({scanning, stopping}, return_when=asyncio.FIRST_COMPLETED)
            logger.info("Shutting down gracefully...")
        finally:
            stop.set()
            stopping.cancel()
            await runner.cleanup()
        for stats in await scanning:
            logger.info(f"{stats.contract}: cursor={stats.cursor} applied={stats.transfers_applied} failed={stats.logs_failed}")
    finally:
        await ledger.aclose()
        await client.aclose()


@app.command()
def run():
    """Scan every watched contract and serve the points API until SIGINT/SIGTERM."""
    s = _settings()
    try:
        asyncio.run(_serve(s))
    except PointLedgerError as e:
        logger.critical(f"Fatal: {e}")
        raise typer.Exit(code=1)


@app.command()
def points(account: str, multiplier: int = 1):
    """Compute an account's points from the local ledger."""
    s = _settings()

    async def main():
        ledger = SqlAlchemyLedger(s.database_url)
        try:
            await ledger.init_schema()
            records = await ledger.balances_for(account)
            total = await PointsCalculator(ledger, load_pools(s.pools_path)).compute_points(account, multiplier)
        finally:
            await ledger.aclose()
        table = Table(title=f"balances of {account.lower()}")
        table.add_column("contract"); table.add_column("balance", justify="right")
        for r in records:
            table.add_row(r.contract, str(r.balance))
        console.print(table)
        console.print(f"[bold]userPoints[/]: {total}")

    try:
        asyncio.run(main())
    except AccountNotFound as e:
        console.print(f"[yellow]{e}[/]")
        raise typer.Exit(code=1)
    except PointLedgerError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(code=1)


@app.command()
def height():
    """Print the node's latest block height."""
    s = _settings()

    async def main() -> int:
        client = await connect(s.rpc_url)
        try:
            return await client.latest_height()
        finally:
            await client.aclose()

    try:
        typer.echo(asyncio.run(main()))
    except PointLedgerError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(code=1)


@app.command("backfill")
def backfill_cmd(contract: str, start_block: int, end_block: int):
    """Replay [start_block, end_block] of one watched contract into the ledger."""
    s = _settings()
    watched = s.watched()
    if contract not in watched:
        raise typer.BadParameter(f"unknown contract {contract!r}; watched: {', '.join(watched)}")

    async def main():
        client = await connect(s.rpc_url)
        ledger = SqlAlchemyLedger(s.database_url)
        try:
            await ledger.init_schema()
            wc = WatchedContract(name=contract, address=watched[contract], cursor=start_block)
            return await backfill(wc, client, ledger, start_block=start_block, end_block=end_block, policy=s.scan_policy())
        finally:
            await ledger.aclose()
            await client.aclose()

    try:
        stats = asyncio.run(main())
    except (PointLedgerError, ValueError) as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(code=1)
    console.print(
        f"[bold]done[/]: [green]applied[/]={stats.transfers_applied}  "
        f"[yellow]duplicates[/]={stats.duplicates_skipped}  [red]failed[/]={stats.logs_failed}"
    )


if __name__ == "__main__":
    app()
