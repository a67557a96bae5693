import snowflake.connector

from assessment_engine.config import get_settings


def get_snowflake_connection():
    """
    Snowflake connection factory.
    Used by repositories via BaseRepository.get_connection().
    """
    return snowflake.connector.connect(**get_settings().snowflake_params)
