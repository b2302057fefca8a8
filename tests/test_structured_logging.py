import json
import logging
from concurrent.futures import ThreadPoolExecutor

from solders.pubkey import Pubkey

from escrow_client.common.logging import JsonLogFormatter, bind_trade_id, get_trade_id, log_event


def _record(logger_name: str = "escrow_client.test", **extra) -> logging.LogRecord:
    rec = logging.LogRecord(logger_name, logging.INFO, __file__, 1, "hello", None, None)
    for k, v in extra.items():
        setattr(rec, k, v)
    return rec


def _fmt() -> JsonLogFormatter:
    return JsonLogFormatter(service="escrow-client", env="test", version="1.0.0", sha="abc123")


def test_formatter_emits_core_fields() -> None:
    payload = json.loads(_fmt().format(_record(event_type="escrow.initiated")))
    assert payload["service"] == "escrow-client"
    assert payload["env"] == "test"
    assert payload["version"] == "1.0.0"
    assert payload["sha"] == "abc123"
    assert payload["severity"] == "INFO"
    assert payload["event_type"] == "escrow.initiated"
    assert payload["message"] == "hello"
    assert payload["trade_id"] is None


def test_formatter_serializes_ledger_values() -> None:
    key = Pubkey.new_unique()
    payload = json.loads(_fmt().format(_record(escrow_account=key, raw=b"\x01\xff", keys=(key,))))
    assert payload["escrow_account"] == str(key)
    assert payload["raw"] == "01ff"
    assert payload["keys"] == [str(key)]
    assert payload["event_type"] == "log"


def test_trade_id_is_bound_for_the_block_only() -> None:
    assert get_trade_id() is None
    with bind_trade_id(trade_id="t-1") as tid:
        assert tid == "t-1"
        payload = json.loads(_fmt().format(_record()))
        assert payload["trade_id"] == "t-1"
    assert get_trade_id() is None

    with bind_trade_id() as generated:
        assert len(generated) == 32


def test_trade_ids_do_not_leak_across_threads() -> None:
    def _run(i: int) -> str | None:
        with bind_trade_id(trade_id=f"t-{i}"):
            return get_trade_id()

    with ThreadPoolExecutor(max_workers=4) as pool:
        assert sorted(pool.map(_run, range(4))) == ["t-0", "t-1", "t-2", "t-3"]


def test_log_event_carries_event_type_and_severity(caplog) -> None:
    logger = logging.getLogger("escrow_client.test")
    with caplog.at_level(logging.INFO, logger="escrow_client.test"):
        log_event(logger, "funding.insufficient", severity="ERROR", required=5000, balance=0)

    (rec,) = caplog.records
    assert rec.levelno == logging.ERROR
    assert rec.event_type == "funding.insufficient"
    assert rec.required == 5000
    assert rec.getMessage() == "funding.insufficient"
