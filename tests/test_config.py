from __future__ import annotations

from pathlib import Path

import pytest

from gatehouse.config import (
    ClusterConfig,
    GatehouseConfig,
    RpcConfig,
    discover_config,
    load_config,
    parse_address,
)


class TestDefaults:
    def test_gatehouse_config(self) -> None:
        cfg = GatehouseConfig()
        assert cfg.node_id == "gatehouse@127.0.0.1"
        assert cfg.call_timeout == 15.0
        assert cfg.rpc == RpcConfig()
        assert cfg.cluster.peers == {}

    def test_rpc_config(self) -> None:
        cfg = RpcConfig()
        assert cfg.host == "127.0.0.1"
        assert cfg.port == 0
        assert cfg.connect_timeout == 2.0

    def test_frozen(self) -> None:
        cfg = GatehouseConfig()
        with pytest.raises(AttributeError):
            cfg.call_timeout = 1.0  # type: ignore[misc]

    def test_cluster_peers_not_shared(self) -> None:
        assert ClusterConfig().peers is not ClusterConfig().peers


def test_parse_address() -> None:
    assert parse_address("10.0.0.2:7650") == ("10.0.0.2", 7650)
    assert parse_address("::1:7650") == ("::1", 7650)


@pytest.mark.parametrize("raw", ["10.0.0.2", ":7650", "10.0.0.2:http"])
def test_parse_address_rejects_malformed(raw: str) -> None:
    with pytest.raises(ValueError, match="host:port"):
        parse_address(raw)


class TestLoadConfig:
    def test_full_file(self, tmp_path: Path) -> None:
        path = tmp_path / "gatehouse.toml"
        path.write_text(
            """
[node]
id = "gw1@10.0.0.1"
call_timeout = 5

[rpc]
host = "0.0.0.0"
port = 7650
connect_timeout = 1.5

[cluster.peers]
"gw2@10.0.0.2" = "10.0.0.2:7650"
"gw3@10.0.0.3" = "10.0.0.3:7651"
"""
        )
        cfg = load_config(path)
        assert cfg.node_id == "gw1@10.0.0.1"
        assert cfg.call_timeout == 5.0
        assert cfg.rpc == RpcConfig(host="0.0.0.0", port=7650, connect_timeout=1.5)
        assert cfg.cluster.peers == {
            "gw2@10.0.0.2": ("10.0.0.2", 7650),
            "gw3@10.0.0.3": ("10.0.0.3", 7651),
        }

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "gatehouse.toml"
        path.write_text("")
        assert load_config(path) == GatehouseConfig()

    def test_missing_explicit_path(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.toml")

    def test_self_is_not_a_peer(self, tmp_path: Path) -> None:
        path = tmp_path / "gatehouse.toml"
        path.write_text(
            '[node]\nid = "gw1"\n\n[cluster.peers]\ngw1 = "127.0.0.1:1"\ngw2 = "127.0.0.1:2"\n'
        )
        assert load_config(path).cluster.peers == {"gw2": ("127.0.0.1", 2)}

    def test_non_positive_call_timeout(self, tmp_path: Path) -> None:
        path = tmp_path / "gatehouse.toml"
        path.write_text("[node]\ncall_timeout = 0\n")
        with pytest.raises(ValueError, match="call_timeout"):
            load_config(path)

    def test_no_file_discovered(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        assert load_config() == GatehouseConfig()


class TestDiscoverConfig:
    def test_walks_up(self, tmp_path: Path) -> None:
        (tmp_path / "gatehouse.toml").write_text('[node]\nid = "x"\n')
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert discover_config(nested) == (tmp_path / "gatehouse.toml").resolve()

    def test_prefers_nearest_file(self, tmp_path: Path) -> None:
        (tmp_path / "gatehouse.toml").write_text("")
        nested = tmp_path / "svc"
        nested.mkdir()
        (nested / "gatehouse.toml").write_text("")
        assert discover_config(nested) == (nested / "gatehouse.toml").resolve()
