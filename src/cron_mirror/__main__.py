from cron_mirror.cli import app

app()
