"""OneDrive / SharePoint connector for Microsoft Graph."""

__version__ = "0.1.0"
