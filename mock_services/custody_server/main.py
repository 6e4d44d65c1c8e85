from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from mortgage_gateway.domain.exceptions import DomainException
from mortgage_gateway.infrastructure.clients.custody import deserialize_asset
from mortgage_gateway.infrastructure.clients.memory_custody import InMemoryCustody

app = FastAPI(title="Mock Custody Server", version="1.0.0")

custody = InMemoryCustody()
applied: Dict[str, List[Dict[str, Any]]] = {}


class Settlement(BaseModel):
    settlement_id: str
    instructions: List[Dict[str, Any]]


class AssetDeposit(BaseModel):
    asset: Dict[str, Any]
    holder: str


def apply_instruction(instruction: Dict[str, Any]) -> None:
    op = instruction["op"]
    if op == "pull_asset":
        custody.pull_asset(deserialize_asset(instruction["asset"]), instruction["from"], instruction["to"])
    elif op == "release_asset":
        custody.release_asset(deserialize_asset(instruction["asset"]), instruction["to"], instruction["from"])
    elif op == "accept_value":
        custody.accept_value(instruction["from"], int(instruction["amount"]), instruction["to"])
    elif op == "pay_out":
        custody.pay_out(instruction["to"], int(instruction["amount"]), instruction["from"])
    else:
        raise HTTPException(status_code=400, detail=f"unknown op {op}")


@app.get("/health")
def health(): return {"status": "ok"}


@app.post("/custody/assets")
def deposit_asset(body: AssetDeposit):
    try:
        custody.deposit_asset(deserialize_asset(body.asset), body.holder)
    except (DomainException, KeyError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"status": "ok"}


@app.post("/custody/settlements")
def settle(body: Settlement):
    # Replays of an applied settlement are acknowledged without re-applying
    if body.settlement_id in applied:
        return {"settlement_id": body.settlement_id, "status": "duplicate"}
    try:
        with custody.atomic():
            for instruction in body.instructions:
                apply_instruction(instruction)
    except (DomainException, KeyError, ValueError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    applied[body.settlement_id] = body.instructions
    return {"settlement_id": body.settlement_id, "status": "applied"}


@app.get("/custody/accounts/{account}")
def get_account(account: str):
    return {"account": account, "balance": str(custody.balances.get(account, 0))}


@app.get("/custody/assets/{asset_key}")
def get_asset(asset_key: str):
    return {"asset": asset_key, "holdings": {h: str(q) for h, q in custody.holdings.get(asset_key, {}).items()}}
