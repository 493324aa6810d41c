from click.testing import CliRunner
from mptbench.cli import main


def test_cli_run(tmp_path):
    path = str(tmp_path / 'bench_db')
    runner = CliRunner()
    result = runner.invoke(main, ['-n', '12', '--slots', '4', '-m', '3', '-k', '5',
                                  '--db', path, '--mod-seed', '1'])
    assert result.exit_code == 0, result.output
    out = result.output
    assert 'Cleaning up old database at %s' % path in out
    assert 'Phase 1: Creating 12 accounts with variable slots (avg 4, k=5)' in out
    assert out.count('[Batch ') == 3
    assert out.count('[Mod Batch ') == 1
    assert 'Creation finished in' in out
    assert 'Modification finished in' in out
    assert '--- Final Report ---' in out
    assert 'Database Path: %s' % path in out


def test_cli_no_clear_keeps_store(tmp_path):
    path = str(tmp_path / 'bench_db')
    runner = CliRunner()
    args = ['-n', '4', '--slots', '2', '-m', '1', '-k', '2', '--db', path]
    assert runner.invoke(main, args).exit_code == 0
    result = runner.invoke(main, args + ['--no-clear'])
    assert result.exit_code == 0
    assert 'Cleaning up' not in result.output


def test_cli_open_failure(tmp_path):
    path = tmp_path / 'file'
    path.write_bytes(b'x')
    result = CliRunner().invoke(main, ['-n', '2', '--db', str(path), '--no-clear'])
    assert result.exit_code == 1
    assert 'Failed to open LevelDB' in result.output
    assert 'Final Report' not in result.output


def test_cli_rejects_bad_batch_size(tmp_path):
    result = CliRunner().invoke(main, ['-k', '0', '--db', str(tmp_path / 'x')])
    assert result.exit_code == 2
