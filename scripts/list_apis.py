"""List published SQL APIs and their call metrics from the state file."""

import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

sys.path.insert(0, str(Path(__file__).parent.parent))

from vulcan.lib.config import get_settings, load_env_files  # noqa: E402
from vulcan.lib.structured_logger import bind_request_id  # noqa: E402
from vulcan.models.published_api import APIStatus  # noqa: E402
from vulcan.services.api_repository import JsonFileAPIRepository  # noqa: E402

project_root = Path(__file__).parent.parent
load_env_files(str(project_root / '.env'), str(project_root / '.env.local'))
console = Console()


@click.command()
@click.option(
  '--state-file',
  type=click.Path(dir_okay=False, path_type=Path),
  default=None,
  help='State file (default VULCAN_STATE_FILE or ./server-state.json)',
)
@click.option('--active-only', is_flag=True, help='Hide inactive APIs')
def main(state_file, active_only):
  """Render published APIs as a table."""
  bind_request_id()
  path = state_file or get_settings().state_file
  if not path.exists():
    console.print(f'[yellow]No state file at {path}[/yellow]')
    return

  apis = JsonFileAPIRepository(path).list_apis()
  if active_only:
    apis = [api for api in apis if api.status == APIStatus.ACTIVE]

  table = Table(title=f'Published APIs ({path})')
  table.add_column('ID', style='dim')
  table.add_column('Name')
  table.add_column('Table')
  table.add_column('Status')
  table.add_column('Calls', justify='right')
  table.add_column('Failed', justify='right')
  table.add_column('Avg ms', justify='right')
  table.add_column('Max conc.', justify='right')
  table.add_column('Last called')

  for api in apis:
    metrics = api.metrics
    status_style = 'green' if api.status == APIStatus.ACTIVE else 'red'
    table.add_row(
      api.id,
      api.name,
      api.table_name or '-',
      f'[{status_style}]{api.status.value}[/{status_style}]',
      str(metrics.total_calls),
      str(metrics.failed_calls),
      f'{metrics.average_response_time:.2f}',
      str(metrics.max_concurrent_calls),
      metrics.last_called_at.isoformat() if metrics.last_called_at else '-',
    )

  console.print(table)
  console.print(f'[dim]{len(apis)} API(s)[/dim]')


if __name__ == '__main__':
  main()
