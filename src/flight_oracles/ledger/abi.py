"""
FlightSurety contract ABIs.

Truffle build artifacts are preferred when available; the minimal ABIs
below cover only what the oracle server calls.
"""

import json
import os
from typing import Any, Dict, List, Optional


def _function(name, inputs=(), outputs=(), mutability="nonpayable"):
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
        "stateMutability": mutability,
        "constant": mutability in ("view", "pure"),
        "payable": mutability == "payable",
    }


def _event(name, inputs):
    return {
        "type": "event",
        "name": name,
        "anonymous": False,
        "inputs": [{"name": n, "type": t, "indexed": False} for n, t in inputs],
    }


FLIGHT_SURETY_APP_ABI: List[Dict[str, Any]] = [
    _function("REGISTRATION_FEE", outputs=[("", "uint256")], mutability="view"),
    _function("registerOracle", mutability="payable"),
    _function("getMyIndexes", outputs=[("", "uint8[3]")], mutability="view"),
    _function(
        "submitOracleResponse",
        inputs=[
            ("index", "uint8"),
            ("airline", "address"),
            ("flight", "string"),
            ("timestamp", "uint256"),
            ("statusCode", "uint8"),
        ],
    ),
    _function(
        "fetchFlightStatus",
        inputs=[("airline", "address"), ("flight", "string"), ("timestamp", "uint256")],
    ),
    _event(
        "OracleRequest",
        [("index", "uint8"), ("airline", "address"), ("flight", "string"), ("timestamp", "uint256")],
    ),
    _event(
        "OracleReport",
        [("airline", "address"), ("flight", "string"), ("timestamp", "uint256"), ("status", "uint8")],
    ),
    _event(
        "FlightStatusInfo",
        [("airline", "address"), ("flight", "string"), ("timestamp", "uint256"), ("status", "uint8")],
    ),
]

FLIGHT_SURETY_DATA_ABI: List[Dict[str, Any]] = [
    _function("authorizeCaller", inputs=[("contractAddress", "address")]),
]


def load_artifact_abi(artifacts_dir: Optional[str], contract_name: str) -> Optional[List[Dict[str, Any]]]:
    """
    Load a contract ABI from a truffle build directory.

    Args:
        artifacts_dir: Directory containing <contract_name>.json
        contract_name: e.g. FlightSuretyApp

    Returns:
        The ABI list, or None if no artifact is available
    """
    if not artifacts_dir:
        return None
    path = os.path.join(artifacts_dir, f"{contract_name}.json")
    if not os.path.exists(path):
        return None
    with open(path, "r") as f:
        return json.load(f)["abi"]
