import logging

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    cloudflare_account_id: str | None = None
    cloudflare_d1_database_id: str | None = None
    cloudflare_api_token: str | None = None
    d1_api_base_url: str = 'https://api.cloudflare.com/client/v4'
    d1_timeout_seconds: int = 30

    bill_number_unique: bool = True
    bill_number_autogenerate: bool = True

    log_level: str = 'INFO'

    company_name: str = 'SHAGOON SEATING CHAIR'
    company_address: str = (
        'GALA NO.07, KAUSHALYA RAMKARAN KEVET CHAWL, NEAR PRAVASI INDUSTRIAL ESTATE, '
        '2ND MARK DORIAN ESTATE, MULUND LINK ROAD, GOREGAON EAST, MUMBAI-400063, MAHARASHTRA'
    )
    company_phone: str = '+91 9867071332/9769956235'
    company_email: str = 'shagoonchair@gmail.com'
    company_gst_number: str = '27AAQFC3444C1ZK'
    company_pan_number: str = 'ASOPG8588M'
    company_state_code: str = '27'
    company_logo_url: str | None = None

    @property
    def d1_api_base_url_normalized(self) -> str:
        return self.d1_api_base_url.strip().rstrip('/')


settings = Settings()


def configure_logging(level: str | None = None, *, force: bool = False) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
        force=force,
    )
