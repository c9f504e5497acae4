#!/usr/bin/env python3
"""
███████╗██████╗ ██╗ ██████╗██╗  ██╗███████╗ ██████╗██╗  ██╗
██╔════╝██╔══██╗██║██╔════╝██║  ██║██╔════╝██╔════╝██║ ██╔╝
█████╗  ██████╔╝██║██║     ███████║█████╗  ██║     █████╔╝
██╔══╝  ██╔═══╝ ██║██║     ██╔══██║██╔══╝  ██║     ██╔═██╗
███████╗██║     ██║╚██████╗██║  ██║███████╗╚██████╗██║  ██╗
╚══════╝╚═╝     ╚═╝ ╚═════╝╚═╝  ╚═╝╚══════╝ ╚═════╝╚═╝  ╚═╝
src/epicheck/config/config_wizard.py
Interactive configuration wizard for EpiCheck.
"""

import getpass
import os
from typing import Dict

from ..utils.env_utils import append_to_env_file, ensure_env_file, read_env_file
from ..utils.logger import logger

SETUP_MARKER = ".first_time_setup_complete"
DEFAULT_INTRA_URL = "https://intra.epitech.eu"


class ConfigWizard:
    """Interactive configuration wizard for first-time setup"""

    def __init__(self, env_file: str = ".env"):
        self.env_file = env_file
        self.config: Dict[str, str] = {}

    def run(self) -> bool:
        """Run the configuration wizard"""
        print("\n" + "=" * 60)
        print("🎯 Welcome to the EpiCheck Configuration Wizard")
        print("=" * 60)

        ensure_env_file(self.env_file)
        existing = self._load_existing_config()

        print("\n" + "🏫 Intranet".center(60, "-"))
        self._configure_intranet(existing)

        print("\n" + "🔐 Microsoft Login".center(60, "-"))
        self._configure_credentials(existing)

        print("\n" + "🌐 Browser Settings".center(60, "-"))
        self._configure_browser()

        print("\n" + "📷 Scanning".center(60, "-"))
        self._configure_scanning(existing)

        if self.config:
            self._save_config()
            print(f"\n✅ Configuration saved to {self.env_file}")

        self.mark_setup_complete()
        print("\n" + "🎉 Setup Complete!".center(60, "="))
        print("\nSign in once, then start scanning:")
        print("  epicheck login")
        print("  epicheck activities")
        return True

    def _load_existing_config(self) -> Dict[str, str]:
        """Load existing configuration from .env file"""
        return read_env_file(self.env_file)

    def _ask(self, prompt: str, default: str = "") -> str:
        suffix = f" [{default}]" if default else ""
        try:
            answer = input(f"{prompt}{suffix}: ").strip()
        except EOFError:
            answer = ""
        return answer or default

    def _configure_intranet(self, existing: Dict[str, str]) -> None:
        url = self._ask("Intranet URL", existing.get("INTRA_URL", DEFAULT_INTRA_URL))
        self.config["INTRA_URL"] = url.rstrip("/")
        domain = self._ask("Student e-mail domain", existing.get("INTRA_DOMAIN", "epitech.eu"))
        self.config["INTRA_DOMAIN"] = domain.lstrip("@")

        print("\nBrowser front-ends need the CORS relay; the CLI can call the intranet directly.")
        relay = self._ask("Relay URL (leave empty for direct access)", existing.get("RELAY_URL", ""))
        if relay:
            self.config["RELAY_URL"] = relay.rstrip("/")

    def _configure_credentials(self, existing: Dict[str, str]) -> None:
        """Optional auto-fill of the Microsoft login page"""
        print("\nLeave empty to type your credentials in the browser window instead.")
        username = self._ask("Microsoft e-mail", existing.get("USERNAME", ""))
        if username:
            self.config["USERNAME"] = username

        password = getpass.getpass("Password: ")
        if password:
            self.config["PASSWORD"] = password

        totp = getpass.getpass("TOTP secret (authenticator setup key, optional): ")
        if totp:
            self.config["TOTP_SECRET"] = totp.replace(" ", "")

    def _configure_browser(self) -> None:
        """Configure browser settings"""
        print("\n1) Use system Chrome (Recommended)")
        print("2) Use system Edge")
        print("3) Use Playwright's Chromium")
        print("4) Use Firefox")

        browser_choice = self._ask("\nChoose (1-4)")
        if browser_choice == "2":
            self.config["BROWSER"] = "chromium"
            self.config["BROWSER_CHANNEL"] = "msedge"
            print("✅ Using system Edge browser")
        elif browser_choice == "3":
            self.config["BROWSER"] = "chromium"
            self.config["BROWSER_CHANNEL"] = ""
            print("✅ Using Playwright's Chromium (requires: playwright install)")
        elif browser_choice == "4":
            self.config["BROWSER"] = "firefox"
            self.config["BROWSER_CHANNEL"] = ""
            print("✅ Using Firefox browser")
        else:
            self.config["BROWSER"] = "chromium"
            self.config["BROWSER_CHANNEL"] = "chrome"
            print("✅ Using system Chrome browser")

    def _configure_scanning(self, existing: Dict[str, str]) -> None:
        cooldown = self._ask("Seconds to ignore the scanner after each scan", existing.get("SCAN_COOLDOWN_SECONDS", "5"))
        try:
            float(cooldown)
        except ValueError:
            print("⚠️ Not a number, keeping 5 seconds")
            cooldown = "5"
        self.config["SCAN_COOLDOWN_SECONDS"] = cooldown

        strict = self._ask("Reject scans matching several students? (Y/n)", "Y").lower()
        self.config["STRICT_MATCHING"] = "0" if strict == "n" else "1"

    def _save_config(self) -> None:
        """Save configuration to .env file"""
        try:
            for key, value in self.config.items():
                append_to_env_file(self.env_file, key, value)
        except OSError as e:
            logger.error("Error saving configuration: %s", e)
            print(f"❌ Error saving configuration: {e}")

    @staticmethod
    def mark_setup_complete() -> None:
        """Record that first-time setup ran so launchers stop prompting"""
        with open(SETUP_MARKER, "w", encoding="utf-8") as f:
            f.write("1\n")

    @staticmethod
    def should_run_wizard() -> bool:
        """Check if the wizard should run (first time setup)"""
        if os.path.exists(SETUP_MARKER):
            return False
        # A .env with a handful of keys means someone configured it by hand
        if len(read_env_file(".env")) > 3:
            return False
        return True

    @staticmethod
    def prompt_user_for_wizard() -> bool:
        """Prompt user to run the configuration wizard"""
        print("\n🎯 First-time Configuration Setup")
        print("=" * 40)
        print("This wizard will help you set the intranet, login and scanner settings.")

        try:
            run_wizard = input("Run configuration wizard? (Y/n): ").strip().lower()
            return run_wizard != "n"
        except EOFError:
            # Non-interactive environment, skip wizard
            return False


def main():
    """Run the configuration wizard standalone"""
    wizard = ConfigWizard()
    wizard.run()


if __name__ == "__main__":
    main()
