"""AuthGate: autenticação de dois fatores (TOTP) e confiança de dispositivos."""

__version__ = "1.0.0"
