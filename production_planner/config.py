import os
import configparser
from pathlib import Path


DEFAULT_WEATHER_TAGS = ('sunny', 'rain', 'storm', 'cloudy', 'wind', 'cold')
DEFAULT_RAIN_TAGS = ('rain', 'storm')


class Config:
    """Configuration manager for the Production Planner."""

    _instance = None

    def __new__(cls):
        """Singleton pattern implementation."""
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize the configuration if not already initialized."""
        if self._initialized:
            return

        override = os.environ.get('PRODUCTION_PLANNER_CONFIG')
        if override:
            self._config_path = Path(override)
            self._config_dir = self._config_path.parent
        else:
            self._config_dir = Path('config')
            self._config_path = self._config_dir / 'settings.ini'
        self._config = configparser.ConfigParser(interpolation=None)

        # Create config directory if it doesn't exist
        if not self._config_dir.exists():
            self._config_dir.mkdir(parents=True)

        # Load config or create default
        if self._config_path.exists():
            self._config.read(self._config_path)
        else:
            self._create_default_config()

        self._initialized = True

    def _create_default_config(self):
        """Create default configuration file."""
        self._config['DATABASE'] = {
            'url': 'sqlite:///production_planner.db',
            'echo': 'False'
        }

        self._config['LOGGING'] = {
            'level': 'INFO',
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'directory': 'logs',
            'max_size_mb': '10',
            'backup_count': '5',
            'console_output': 'True',
            'file_output': 'True'
        }

        self._config['BATCH_PROCESS'] = {
            'max_workers': '1'
        }

        self._config['FORECASTING'] = {
            'service_level': '0.90',  # or 'critical_ratio'
            'lot_size': '5',
            'baseline_window_days': '30',
            'min_baseline_points': '5',
            'min_history_points': '10',
            'full_confidence_days': '20',
            'weekday_ratio_low': '0.1',
            'weekday_ratio_high': '5.0',
            'payday_residual_low': '0.2',
            'payday_residual_high': '4.0',
            'weather_residual_low': '0.1',
            'weather_residual_high': '5.0',
            'high_confidence': '0.7',
            'medium_confidence': '0.3',
            'interval_lower_quantile': '0.10',
            'interval_upper_quantile': '0.90',
            'weather_tags': ','.join(DEFAULT_WEATHER_TAGS),
            'rain_tags': ','.join(DEFAULT_RAIN_TAGS)
        }

        self._config['PATTERN_MINING'] = {
            'min_group_days': '3',
            'min_average_quantity': '1.0',
            'rain_drop_threshold': '-25.0',
            'rain_drop_escalation': '-50.0',
            'payday_boost_threshold': '15.0',
            'payday_boost_escalation': '40.0',
            'trend_window': '7',
            'trend_min_prior_points': '3',
            'trend_change_threshold': '20.0',
            'trend_change_escalation': '40.0',
            'correlation_min_overlap': '7',
            'synergy_threshold': '0.70',
            'cannibalization_threshold': '-0.55',
            'context_min_overlap': '4',
            'context_lift_threshold': '0.30',
            'context_min_correlation': '0.75',
            'max_products': '0',
            'introduction_impact': 'False',
            'introduction_min_days_before': '7',
            'introduction_min_days_after': '5',
            'introduction_drop_threshold': '-20.0',
            'introduction_drop_escalation': '-40.0'
        }

        self._config['LEARNING'] = {
            'bias_alpha': '0.3',
            'min_records': '3',
            'min_weekday_records': '2',
            'stockout_ratio': '0.95',
            'stockout_uplift': '1.25',
            'gain_step': '0.1',
            'max_gain_steps': '5'
        }

        self._save_config()

    def _save_config(self):
        """Save configuration to file."""
        with open(self._config_path, 'w') as configfile:
            self._config.write(configfile)

    def get(self, section, key, default=None):
        """Get configuration value."""
        try:
            return self._config.get(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError):
            return default

    def get_int(self, section, key, default=None):
        """Get configuration value as integer."""
        try:
            return self._config.getint(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def get_float(self, section, key, default=None):
        """Get configuration value as float."""
        try:
            return self._config.getfloat(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def get_boolean(self, section, key, default=None):
        """Get configuration value as boolean."""
        try:
            return self._config.getboolean(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def get_list(self, section, key, default=()):
        """Get a comma separated configuration value as a tuple of strings."""
        raw = self.get(section, key)
        if raw is None:
            return tuple(default)
        return tuple(item.strip().lower() for item in raw.split(',') if item.strip())

    def set(self, section, key, value):
        """Set configuration value."""
        if not self._config.has_section(section):
            self._config.add_section(section)

        self._config.set(section, key, str(value))
        self._save_config()

    def get_db_url(self):
        """Get SQLAlchemy database URL."""
        return self.get('DATABASE', 'url', 'sqlite:///production_planner.db')

    @property
    def log_config(self):
        """Get logging configuration."""
        return {
            'level': self.get('LOGGING', 'level', 'INFO'),
            'format': self.get('LOGGING', 'format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s'),
            'directory': self.get('LOGGING', 'directory', 'logs'),
            'max_size_mb': self.get_int('LOGGING', 'max_size_mb', 10),
            'backup_count': self.get_int('LOGGING', 'backup_count', 5),
            'console_output': self.get_boolean('LOGGING', 'console_output', True),
            'file_output': self.get_boolean('LOGGING', 'file_output', True)
        }

    @property
    def batch_config(self):
        """Get batch processing configuration."""
        return {
            'max_workers': self.get_int('BATCH_PROCESS', 'max_workers', 1)
        }

    @property
    def forecast_settings(self):
        """Get seasonality and newsvendor settings."""
        section = 'FORECASTING'
        service_level = self.get(section, 'service_level', '0.90')
        if service_level != 'critical_ratio':
            service_level = self.get_float(section, 'service_level', 0.90)
        return {
            'service_level': service_level,
            'lot_size': self.get_int(section, 'lot_size', 5),
            'baseline_window_days': self.get_int(section, 'baseline_window_days', 30),
            'min_baseline_points': self.get_int(section, 'min_baseline_points', 5),
            'min_history_points': self.get_int(section, 'min_history_points', 10),
            'full_confidence_days': self.get_int(section, 'full_confidence_days', 20),
            'weekday_ratio_low': self.get_float(section, 'weekday_ratio_low', 0.1),
            'weekday_ratio_high': self.get_float(section, 'weekday_ratio_high', 5.0),
            'payday_residual_low': self.get_float(section, 'payday_residual_low', 0.2),
            'payday_residual_high': self.get_float(section, 'payday_residual_high', 4.0),
            'weather_residual_low': self.get_float(section, 'weather_residual_low', 0.1),
            'weather_residual_high': self.get_float(section, 'weather_residual_high', 5.0),
            'high_confidence': self.get_float(section, 'high_confidence', 0.7),
            'medium_confidence': self.get_float(section, 'medium_confidence', 0.3),
            'interval_lower_quantile': self.get_float(section, 'interval_lower_quantile', 0.10),
            'interval_upper_quantile': self.get_float(section, 'interval_upper_quantile', 0.90),
            'weather_tags': self.get_list(section, 'weather_tags', DEFAULT_WEATHER_TAGS),
            'rain_tags': self.get_list(section, 'rain_tags', DEFAULT_RAIN_TAGS)
        }

    @property
    def pattern_settings(self):
        """Get pattern mining thresholds."""
        section = 'PATTERN_MINING'
        return {
            'min_group_days': self.get_int(section, 'min_group_days', 3),
            'min_average_quantity': self.get_float(section, 'min_average_quantity', 1.0),
            'rain_drop_threshold': self.get_float(section, 'rain_drop_threshold', -25.0),
            'rain_drop_escalation': self.get_float(section, 'rain_drop_escalation', -50.0),
            'payday_boost_threshold': self.get_float(section, 'payday_boost_threshold', 15.0),
            'payday_boost_escalation': self.get_float(section, 'payday_boost_escalation', 40.0),
            'trend_window': self.get_int(section, 'trend_window', 7),
            'trend_min_prior_points': self.get_int(section, 'trend_min_prior_points', 3),
            'trend_change_threshold': self.get_float(section, 'trend_change_threshold', 20.0),
            'trend_change_escalation': self.get_float(section, 'trend_change_escalation', 40.0),
            'correlation_min_overlap': self.get_int(section, 'correlation_min_overlap', 7),
            'synergy_threshold': self.get_float(section, 'synergy_threshold', 0.70),
            'cannibalization_threshold': self.get_float(section, 'cannibalization_threshold', -0.55),
            'context_min_overlap': self.get_int(section, 'context_min_overlap', 4),
            'context_lift_threshold': self.get_float(section, 'context_lift_threshold', 0.30),
            'context_min_correlation': self.get_float(section, 'context_min_correlation', 0.75),
            'max_products': self.get_int(section, 'max_products', 0),
            'introduction_impact': self.get_boolean(section, 'introduction_impact', False),
            'introduction_min_days_before': self.get_int(section, 'introduction_min_days_before', 7),
            'introduction_min_days_after': self.get_int(section, 'introduction_min_days_after', 5),
            'introduction_drop_threshold': self.get_float(section, 'introduction_drop_threshold', -20.0),
            'introduction_drop_escalation': self.get_float(section, 'introduction_drop_escalation', -40.0),
            'rain_tags': self.get_list('FORECASTING', 'rain_tags', DEFAULT_RAIN_TAGS)
        }

    @property
    def learning_settings(self):
        """Get bias correction settings."""
        section = 'LEARNING'
        return {
            'bias_alpha': self.get_float(section, 'bias_alpha', 0.3),
            'min_records': self.get_int(section, 'min_records', 3),
            'min_weekday_records': self.get_int(section, 'min_weekday_records', 2),
            'stockout_ratio': self.get_float(section, 'stockout_ratio', 0.95),
            'stockout_uplift': self.get_float(section, 'stockout_uplift', 1.25),
            'gain_step': self.get_float(section, 'gain_step', 0.1),
            'max_gain_steps': self.get_int(section, 'max_gain_steps', 5)
        }

# Global config instance
config = Config()
