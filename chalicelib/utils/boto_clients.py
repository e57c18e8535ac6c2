import os

from botocore.config import Config

main_boto_region = os.environ.get('AWS_REGION', 'eu-central-1')
gen_table_name = os.environ.get('GEN_TABLE_NAME', 'cafe-orders')
endpoint_url = os.environ.get('ENDPOINT_URL')

db_connect_timeout = float(os.environ.get('DB_CONNECT_TIMEOUT', 2))
db_read_timeout = float(os.environ.get('DB_READ_TIMEOUT', 5))
db_read_max_retries = int(os.environ.get('DB_READ_MAX_RETRIES', 5))

# botocore retries reads on its own
aws_config_ddb_read = Config(
    retries={'max_attempts': db_read_max_retries, 'mode': 'standard'},
    connect_timeout=db_connect_timeout,
    read_timeout=db_read_timeout,
    region_name=main_boto_region
)

# single attempt for writes
aws_config_ddb_write = Config(
    retries={'total_max_attempts': 1, 'mode': 'standard'},
    connect_timeout=db_connect_timeout,
    read_timeout=db_read_timeout,
    region_name=main_boto_region
)
