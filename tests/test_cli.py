"""Tests for the command line front end."""

import json

from click.testing import CliRunner

from rag_ingest.cli import cli


def _config(tmp_path, backend="memory"):
    path = tmp_path / "config.yaml"
    path.write_text(f"""
embedding:
  backend: hash
  fallback_dim: 16
store:
  backend: {backend}
  path: {tmp_path / 'store.json'}
  vector_path: {tmp_path / 'vectors'}
audit_log:
  file: {tmp_path / 'audit.log'}
processing:
  base_delay: 0
  retry_delay: 0
""", encoding="utf-8")
    return str(path)


def test_add_dry_run_prints_analysis(tmp_path, sample_file):
    result = CliRunner().invoke(cli, ['add', str(sample_file), '--config', _config(tmp_path),
                                      '--strategy', 'character', '--chunk-size', '100',
                                      '--overlap', '20', '--dry-run'])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output[result.output.index('{'):])
    assert payload['analysis']['count'] > 1
    assert payload['metadata']['word_count'] > 0
    assert not (tmp_path / 'audit.log').exists()


def test_add_embeds_chunks_without_context_model(tmp_path, sample_file):
    result = CliRunner().invoke(cli, ['add', str(sample_file), '--config', _config(tmp_path),
                                      '--max-parallel', '3'])

    assert result.exit_code == 0, result.output
    assert "skipping context generation" in result.output
    assert "Failed:             0" in result.output

    events = [json.loads(line) for line in (tmp_path / 'audit.log').read_text().splitlines()]
    assert [e['event'] for e in events] == ['document_ingestion', 'chunk_batch']


def test_add_rejects_out_of_range_parallelism(tmp_path, sample_file):
    result = CliRunner().invoke(cli, ['add', str(sample_file), '--config', _config(tmp_path),
                                      '--max-parallel', '25'])

    assert result.exit_code != 0


def test_invalid_config_reports_error(tmp_path, sample_file):
    path = tmp_path / "bad.yaml"
    path.write_text("chunking:\n  overlap: 5000\n", encoding="utf-8")

    result = CliRunner().invoke(cli, ['add', str(sample_file), '--config', str(path)])

    assert result.exit_code == 1
    assert "Config error" in result.output
