import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///dartscore.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Periodic snapshot of every live match (seconds). 0 disables.
    AUTOSAVE_INTERVAL_SEC = float(os.environ.get('AUTOSAVE_INTERVAL_SEC', '30'))
    # Sleep slice of the autosave worker, bounds how long a stop takes (sec)
    TIMER_HEARTBEAT_SEC = float(os.environ.get('TIMER_HEARTBEAT_SEC', '1'))
    MIN_PLAYERS = int(os.environ.get('MIN_PLAYERS', '2'))
    DEFAULT_LEGS_TO_WIN = int(os.environ.get('DEFAULT_LEGS_TO_WIN', '3'))
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
