from blacklist_stats import cli

if __name__ == "__main__":
    cli.app()
