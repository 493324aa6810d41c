import click

from mptbench import slogging
from mptbench.config import BenchConfig, default_config
from mptbench.exceptions import ConfigError
from mptbench.bench import Benchmark
from mptbench.reporting import ConsoleReporter, LogReporter


@click.command()
@click.option('-n', 'n', type=int, default=default_config['NUM_ACCOUNTS'], show_default=True,
              help='Number of accounts to create.')
@click.option('--slots', type=int, default=default_config['AVG_SLOTS'], show_default=True,
              help='Average number of storage slots per account.')
@click.option('-m', 'm', type=int, default=default_config['NUM_MODIFY'], show_default=True,
              help='Number of accounts to modify after creation.')
@click.option('-k', 'k', type=int, default=default_config['BATCH_SIZE'], show_default=True,
              help='Number of accounts per commit/flush.')
@click.option('--db', 'db_path', default=default_config['DB_PATH'], show_default=True,
              help='Path to the LevelDB store.')
@click.option('--clear/--no-clear', default=default_config['CLEAR_DB'], show_default=True,
              help='Clear the database before starting.')
@click.option('--seed', type=int, default=default_config['CREATION_SEED'], show_default=True,
              help='Seed of the account creation workload.')
@click.option('--mod-seed', type=int, default=None,
              help='Seed of the modification workload (default: clock based).')
@click.option('--retention', type=int, default=default_config['TRIE_RETENTION'],
              show_default=True, help='Flushed state roots kept on disk before pruning.')
@click.option('-l', '--log-config', default=':info', show_default=True,
              help='Log levels, e.g. ":info,triedb:debug".')
@click.option('--log-json', is_flag=True, help='Log as JSON.')
@click.option('--log-file', type=click.Path(dir_okay=False), default=None,
              help='Also log to this file.')
@click.pass_context
def main(ctx, n, slots, m, k, db_path, clear, seed, mod_seed, retention, log_config,
         log_json, log_file):
    slogging.configure(log_config, log_json=log_json, log_file=log_file)
    try:
        config = BenchConfig(
            NUM_ACCOUNTS=n, AVG_SLOTS=slots, NUM_MODIFY=m, BATCH_SIZE=k,
            DB_PATH=db_path, CLEAR_DB=clear, CREATION_SEED=seed,
            MODIFICATION_SEED=mod_seed, TRIE_RETENTION=retention)
    except ConfigError as e:
        raise click.BadParameter(str(e))
    reporters = [ConsoleReporter(config['PROGRESS_INTERVAL']), LogReporter(level='debug')]
    result = Benchmark(config, reporters=reporters).run()
    if not result.ok:
        ctx.exit(1)


if __name__ == '__main__':
    main()
