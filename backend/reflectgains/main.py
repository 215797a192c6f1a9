from __future__ import annotations

from collections.abc import Generator
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Query

from . import schemas
from .core.config import settings
from .core.errors import CollaboratorUnavailable, InvalidAddress, NoTransactionsFound
from .db import get_db, init_db
from .domain import FixedPoint
from .repositories import PriceCacheRepository
from .services.analysis_service import AnalysisService, Collaborators

app = FastAPI(title="ReflectGains API", version="0.1.0", debug=settings.debug)


@lru_cache
def get_collaborators() -> Collaborators:
    """Upstream clients shared by every request so the top coin cache survives."""

    return Collaborators.create()


@app.on_event("startup")
def on_startup() -> None:
    """Create the price cache table when the API boots."""

    init_db()


@app.on_event("shutdown")
def on_shutdown() -> None:
    if get_collaborators.cache_info().currsize:
        get_collaborators().close()
        get_collaborators.cache_clear()


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic readiness check consumed by infrastructure monitors."""

    return {"status": "ok"}


def _analysis_service(
    db=Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
) -> Generator[AnalysisService, None, None]:
    """Provide the analysis service wired to the SQL-backed price cache."""

    service = AnalysisService(PriceCacheRepository(db), collaborators=collaborators)
    try:
        yield service
        db.commit()
    finally:
        service.close()


def _unavailable(exc: CollaboratorUnavailable) -> HTTPException:
    return HTTPException(
        status_code=503,
        detail=f"{exc.collaborator} is unavailable, try again shortly",
    )


@app.get("/top-coins", response_model=schemas.TopCoinList, tags=["tokens"])
def list_top_coins(service: AnalysisService = Depends(_analysis_service)):
    """Ranked coins used for the market cap comparison."""

    try:
        coins = service.top_coins()
    except CollaboratorUnavailable as exc:
        raise _unavailable(exc) from exc
    return schemas.TopCoinList(
        total=len(coins),
        items=[schemas.TopCoinOut.from_coin(coin, rank) for rank, coin in enumerate(coins, start=1)],
    )


@app.get("/tokens/{contract}", response_model=schemas.TokenInfo, tags=["tokens"])
def get_token(contract: str, service: AnalysisService = Depends(_analysis_service)):
    """Current price, supply and market cap of a token (address or short name)."""

    try:
        snapshot = service.token_snapshot(contract)
    except InvalidAddress as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except CollaboratorUnavailable as exc:
        raise _unavailable(exc) from exc
    return schemas.TokenInfo.from_snapshot(snapshot)


@app.get(
    "/tokens/{contract}/wallets/{wallet}/analysis",
    response_model=schemas.Analysis,
    tags=["analysis"],
)
def analyze_wallet(
    contract: str,
    wallet: str,
    *,
    top_coin: Annotated[
        int | None, Query(ge=0, description="Zero-based index into the top coin list")
    ] = None,
    balance: Annotated[
        str | None,
        Query(description="Override the live balance, in whole tokens (e.g. 1234.5)"),
    ] = None,
    service: AnalysisService = Depends(_analysis_service),
):
    """Cost basis, gains and market cap projection for a wallet's token history."""

    override = None
    if balance is not None:
        try:
            override = FixedPoint.from_string(balance)
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc

    try:
        report = service.analyze(contract, wallet, balance=override, top_coin_index=top_coin)
    except InvalidAddress as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except NoTransactionsFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except CollaboratorUnavailable as exc:
        raise _unavailable(exc) from exc
    return schemas.Analysis.from_report(report)
