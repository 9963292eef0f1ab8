import os
import signal
from unittest.mock import MagicMock, patch

import pandas as pd

from scaler.k8s import ClusterClientError
from scaler.main import main
from scaler.manifests import load_resources


def scale_args(manifest_file, *positional, extra=()):
    return ["scale", "-f", str(manifest_file), "-v", "NAMESPACE:scale", *extra, *positional]


def test_invalid_pattern_exits_without_apply(manifest_file, capsys):
    with patch("scaler.main.ClusterClient") as MockClient:
        code = main(scale_args(manifest_file, "20", "1", "1s", "foo"))

    assert code == 2
    MockClient.from_config.assert_not_called()
    assert "invalid pattern: 'foo'" in capsys.readouterr().err


def test_min_above_max_is_rejected(manifest_file):
    with patch("scaler.main.ClusterClient") as MockClient:
        assert main(scale_args(manifest_file, "1", "20", "1s")) == 2
    MockClient.from_config.assert_not_called()


def test_client_construction_failure(manifest_file, capsys):
    with patch(
        "scaler.main.ClusterClient.from_config",
        side_effect=ClusterClientError("no kubeconfig"),
    ):
        assert main(scale_args(manifest_file, "20", "1", "1s")) == 2
    assert "Error creating k8s client" in capsys.readouterr().err


def test_manifest_failure(tmp_path, capsys):
    broken = tmp_path / "broken.yaml"
    broken.write_text("kind: [unclosed\n")
    cluster = MagicMock()
    cluster.load_descriptors.side_effect = lambda paths, variables: load_resources(paths, variables)

    with patch("scaler.main.ClusterClient.from_config", return_value=cluster):
        assert main(["scale", "-f", str(broken), "20", "1", "1s"]) == 2

    cluster.apply.assert_not_called()
    cluster.close.assert_called_once()
    assert "Error parsing deployment files" in capsys.readouterr().err


def test_dry_run_lists_deployments(manifest_file, capsys):
    with patch("scaler.main.ClusterClient") as MockClient:
        code = main(scale_args(manifest_file, "100", "0", "15m", "step", extra=["--dry-run"]))

    assert code == 0
    MockClient.from_config.assert_not_called()
    out = capsys.readouterr().out
    assert "Pattern: step max=100 min=0 interval=900.0s scalingFactor=10" in out
    assert "fake-webserver.yaml: scale/fake-webserver" in out


def test_run_until_signalled_writes_history(manifest_file, tmp_path):
    resources = load_resources([manifest_file], {"NAMESPACE": "scale"})
    cluster = MagicMock()
    cluster.list_resources.return_value = resources
    cluster.apply.side_effect = lambda targets: os.kill(os.getpid(), signal.SIGTERM)
    history_path = tmp_path / "history.csv"
    previous = signal.getsignal(signal.SIGTERM)

    with patch("scaler.main.ClusterClient.from_config", return_value=cluster):
        code = main(
            scale_args(manifest_file, "20", "1", "0s", extra=["--history-path", str(history_path)])
        )

    assert code == 0
    assert cluster.apply.call_count >= 1
    applied = cluster.apply.call_args_list[0].args[0]
    assert applied[0].objects[0].body["spec"]["replicas"] == 20
    cluster.close.assert_called_once()
    assert signal.getsignal(signal.SIGTERM) == previous
    df = pd.read_csv(history_path)
    assert list(df["replicas"])[0] == 20


def test_non_finite_interval_is_rejected_at_startup(manifest_file, capsys):
    with patch("scaler.main.ClusterClient") as MockClient:
        assert main(scale_args(manifest_file, "2", "1", "inf")) == 2
    MockClient.from_config.assert_not_called()
    assert "invalid duration: 'inf'" in capsys.readouterr().err


def test_history_is_only_kept_with_history_path(manifest_file):
    cluster = MagicMock()
    with patch("scaler.main.ClusterClient.from_config", return_value=cluster), patch(
        "scaler.main.ReplicaOscillator"
    ) as MockOscillator:
        MockOscillator.return_value.outcomes = {"ok": 3}
        assert main(scale_args(manifest_file, "20", "1", "1s")) == 0

    _, kwargs = MockOscillator.call_args
    assert kwargs["history"] is None
    MockOscillator.return_value.run.assert_called_once()
