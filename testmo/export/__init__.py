from testmo.export.csv_export import export_external, export_standard, write_export

__all__ = ["export_external", "export_standard", "write_export"]
