from makepicks import create_app, db
from makepicks.models import Pick, ReminderLog, Round, Season, User

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "User": User,
        "Season": Season,
        "Round": Round,
        "Pick": Pick,
        "ReminderLog": ReminderLog,
    }


if __name__ == "__main__":
    # use_reloader would start a second round clock in the child process
    app.run(host="0.0.0.0", port=5000, debug=True, use_reloader=False)
