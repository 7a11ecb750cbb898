#!/usr/bin/env python3
"""
Tests for Safe transaction builder batches
"""

import json

import pytest

from deploytools.artifacts import load_abi
from deploytools.safe import build_and_write_gnosis_json, build_gnosis_safe_json, construct_contract_method

SAFE = "0x1111111111111111111111111111111111111111"
TIMELOCK = "0x2222222222222222222222222222222222222222"


class TestSafeJson:
    """Test class for Safe transaction builder files"""

    def setup_method(self):
        """Set up test fixtures before each test method"""
        self.abi = load_abi("timelock_controller")
        self.method = construct_contract_method(
            self.abi, "executeBatch(address[],uint256[],bytes[],bytes32,bytes32)"
        )
        self.values = {"targets": "[]", "values": "[]", "payloads": "[]", "predecessor": "0x", "salt": "0x"}

    def test_construct_contract_method(self):
        """Test method description taken from the ABI"""
        assert self.method["name"] == "executeBatch"
        assert self.method["payable"] is True
        assert [i["name"] for i in self.method["inputs"]] == ["targets", "values", "payloads", "predecessor", "salt"]

    def test_unknown_method(self):
        """Test signatures missing from the ABI"""
        with pytest.raises(ValueError):
            construct_contract_method(self.abi, "executeBatch(address[])")

    def test_tuple_inputs(self):
        """Test tuple arguments are matched on their canonical type"""
        abi = load_abi("createx")
        method = construct_contract_method(
            abi, "deployCreate2AndInit(bytes32,bytes,bytes,(uint256,uint256),address)"
        )
        assert method["name"] == "deployCreate2AndInit"

    def test_build_gnosis_safe_json(self):
        """Test batch layout"""
        data = build_gnosis_safe_json(1, SAFE, [TIMELOCK], [self.method], [self.values])
        assert data["version"] == "1.0"
        assert data["chainId"] == "1"
        assert data["meta"]["createdFromSafeAddress"] == SAFE
        assert data["transactions"] == [{
            "to": TIMELOCK,
            "value": "0",
            "data": None,
            "contractMethod": self.method,
            "contractInputsValues": self.values,
        }]

    def test_write_file(self, tmp_path):
        """Test batch file written to the output directory"""
        path = build_and_write_gnosis_json(
            1, SAFE, [TIMELOCK], [self.method], [self.values], "executeBatch", str(tmp_path)
        )
        assert path.endswith("-executeBatch-gov-tx.json")
        with open(path) as f:
            assert json.load(f)["transactions"][0]["to"] == TIMELOCK

    def test_not_written_on_ci(self, tmp_path):
        """Test CI runs do not leave files behind"""
        path = build_and_write_gnosis_json(
            1, SAFE, [TIMELOCK], [self.method], [self.values], "executeBatch", str(tmp_path), ci=True
        )
        assert path is None
        assert list(tmp_path.iterdir()) == []
