"""Generate a callable SQL API URL and matching curl command.

The URL embeds the connection descriptor encrypted with VULCAN_ENCRYPTION_KEY
(loaded from .env / .env.local), so it can be called without registering the
connection first. The API must still be published for the call to succeed.

Example:
  python scripts/generate_curl.py --engine POSTGRESQL --host localhost --port 5432 \
    --username app --password secret --database shop \
    --table users --sql "SELECT * FROM users WHERE id = 5"
"""

import sys
from pathlib import Path

import click
from rich.console import Console

sys.path.insert(0, str(Path(__file__).parent.parent))

from vulcan.lib.config import get_settings, load_env_files  # noqa: E402
from vulcan.lib.errors import VulcanError  # noqa: E402
from vulcan.lib.structured_logger import bind_request_id  # noqa: E402
from vulcan.models.connection import ConnectionDescriptor, Engine  # noqa: E402
from vulcan.services.publish_service import build_sql_api_url  # noqa: E402

project_root = Path(__file__).parent.parent
load_env_files(str(project_root / '.env'), str(project_root / '.env.local'))
console = Console()


@click.command()
@click.option(
  '--engine',
  type=click.Choice([engine.value for engine in Engine]),
  default=Engine.POSTGRESQL.value,
  help='Database engine',
)
@click.option('--host', default='localhost', help='Database host')
@click.option('--port', default=None, help='Database port (default 5432 / 3306)')
@click.option('--username', required=True, help='Database user')
@click.option('--password', default='', help='Database password')
@click.option('--database', required=True, help='Database name')
@click.option('--table', 'table_name', required=True, help='Table segment of the URL')
@click.option('--sql', required=True, help='Published SQL template')
@click.option('--base-url', default=None, help='Server base URL (default VULCAN_PUBLIC_BASE_URL or http://localhost:8000)')
def main(engine, host, port, username, password, database, table_name, sql, base_url):
  """Print the encrypted URL and a curl command for a SQL API."""
  bind_request_id()
  settings = get_settings()
  connection = ConnectionDescriptor(
    engine_type=Engine(engine),
    host=host,
    port=port or ('3306' if engine == Engine.MYSQL.value else '5432'),
    username=username,
    password=password,
    database=database,
  )
  base_url = (base_url or settings.public_base_url or 'http://localhost:8000').rstrip('/')

  try:
    url = build_sql_api_url(connection, table_name, sql, base_url=base_url, settings=settings)
  except VulcanError as e:
    console.print(f'[red]Error: {e.message}[/red]')
    sys.exit(1)

  console.print('[bold]Generated curl command:[/bold]')
  console.print(f'curl -X GET "{url}"', soft_wrap=True, markup=False, highlight=False)
  console.print('\n[dim]Note: The URL contains encrypted connection information.[/dim]')


if __name__ == '__main__':
  main()
