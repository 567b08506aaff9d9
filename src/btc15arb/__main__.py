"""Allow running as: python -m btc15arb"""
from dotenv import load_dotenv

load_dotenv()

from btc15arb.main import cli_main  # noqa: E402

if __name__ == "__main__":
    cli_main()
