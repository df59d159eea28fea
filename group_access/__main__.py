from group_access.workers.socket_mode import main  # pragma: no cover

# Allows `python -m group_access` to start the bot.
if __name__ == "__main__":  # pragma: no cover
    main()
