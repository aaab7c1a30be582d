import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Base configuration class."""
    # SECRET_KEY must be set via environment variable in production
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    # Relative sqlite paths resolve inside the Flask instance folder
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///payroll.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CREATE_TABLES = os.environ.get('CREATE_TABLES', '').lower() in ('1', 'true', 'yes')

    # Payroll engine settings (fallbacks for rows missing from payroll_configuration)
    TIMEZONE = os.environ.get('TIMEZONE') or 'Asia/Manila'
    PAYROLL_PAY_FREQUENCY = os.environ.get('PAYROLL_PAY_FREQUENCY') or 'semi-monthly'
    PAYROLL_MAX_WORKERS = int(os.environ.get('PAYROLL_MAX_WORKERS') or 4)

    # Logging
    LOG_TO_STDOUT = os.environ.get('LOG_TO_STDOUT')

    @staticmethod
    def init_app(app):
        """Initialize application-specific configuration."""
        import logging
        from logging import StreamHandler

        formatter = logging.Formatter(
            '%(asctime)s %(levelname)s %(name)s: %(message)s [in %(pathname)s:%(lineno)d]'
        )
        # app.logger is the "payroll_engine" logger, so pipeline module loggers propagate to it
        if app.config.get('LOG_TO_STDOUT'):
            stream_handler = StreamHandler()
            stream_handler.setFormatter(formatter)
            stream_handler.setLevel(logging.INFO)
            app.logger.addHandler(stream_handler)
        elif not app.debug and not app.testing:
            if not os.path.exists('logs'):
                os.mkdir('logs')
            file_handler = logging.FileHandler('logs/payroll.log')
            file_handler.setFormatter(formatter)
            file_handler.setLevel(logging.INFO)
            app.logger.addHandler(file_handler)

        if not app.debug:
            app.logger.setLevel(logging.INFO)
        app.logger.info('Payroll engine startup')

    @classmethod
    def payroll_settings(cls, app_config):
        """Scalar payroll settings taken from the Flask config."""
        return {
            'timezone': app_config.get('TIMEZONE', cls.TIMEZONE),
            'pay_frequency': app_config.get('PAYROLL_PAY_FREQUENCY', cls.PAYROLL_PAY_FREQUENCY),
        }

class DevelopmentConfig(Config):
    DEBUG = True
    CREATE_TABLES = True

class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    WTF_CSRF_ENABLED = False
    CREATE_TABLES = True
    PAYROLL_MAX_WORKERS = 2

class ProductionConfig(Config):
    DEBUG = False
    # In production, these must be set via environment variables

    @staticmethod
    def init_app(app):
        """Initialize production configuration with validation."""
        Config.init_app(app)

        if not os.environ.get('SECRET_KEY'):
            raise ValueError("SECRET_KEY environment variable must be set in production!")

        if not os.environ.get('DATABASE_URL'):
            raise ValueError("DATABASE_URL environment variable must be set in production!")

        app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY')
        app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL')

config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}
