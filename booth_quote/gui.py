from __future__ import annotations

import threading
import webbrowser
from datetime import datetime
from pathlib import Path
from typing import List, Optional
import tkinter as tk
from tkinter import ttk, filedialog, messagebox

from booth_quote.config import APP_NAME, CURRENCY, default_data_dir, default_output_dir
from booth_quote.extract.catalog_excel import merge_materials, read_materials_from_excel
from booth_quote.logger import current_log_file, setup_file_logger
from booth_quote.models import Project
from booth_quote.pricing import compute_totals, cost_breakdown
from booth_quote.render.docx_proposal import render_proposal_docx
from booth_quote.render.excel_quote import render_quote_xlsx
from booth_quote.render.layout import fmt_money, fmt_whole
from booth_quote.render.pdf_export import ExportInProgress, ProposalExporter, build_mailto, render_proposal
from booth_quote.storage import Repositories, seed_transport

FORMATS = ["PDF", "DOCX", "XLSX"]
DRAFT_LABEL = "(current draft)"


def _safe_name(name: str) -> str:
    return "".join(ch for ch in name if ch.isalnum() or ch in " _-").strip().replace(" ", "_") or "Pro"


class AppGUI:
    def __init__(self, root: tk.Tk, data_dir: Optional[Path] = None):
        self.root = root
        self.root.title(APP_NAME)
        self.root.geometry("900x650")

        self.logger = setup_file_logger(default_output_dir() / "logs")
        self.repos = Repositories(data_dir or default_data_dir())
        self.config = self.repos.config.load_or_default()
        self.rules = seed_transport()
        self.exporter = ProposalExporter(self.config, self.rules)

        self.projects: List[Project] = []
        try:
            self.projects = self.repos.archive.load()
        except ValueError as e:
            messagebox.showerror("Load error", str(e))
        try:
            draft = self.repos.draft.load()
        except (KeyError, TypeError, ValueError) as e:
            self.logger.warning("Draft ignored: %s", e)
            draft = None
        self.draft = draft

        self._build_ui()

    def _build_ui(self):
        frm = ttk.Frame(self.root, padding=10)
        frm.pack(fill=tk.BOTH, expand=True)

        top = ttk.LabelFrame(frm, text="Project", padding=10)
        top.pack(fill=tk.X)

        labels = [f"{p.name} [{p.client_name or '-'}]" for p in self.projects]
        if self.draft is not None:
            labels.append(DRAFT_LABEL)
        self.cb_project = ttk.Combobox(top, state="readonly", width=60, values=labels)
        self.cb_project.pack(side=tk.LEFT, fill=tk.X, expand=True)
        self.cb_project.bind("<<ComboboxSelected>>", lambda _: self._show_totals())
        if labels:
            self.cb_project.current(0)

        ttk.Button(top, text="Import price list", command=self.on_import_catalog).pack(side=tk.RIGHT)

        view = ttk.LabelFrame(frm, text="Layout", padding=10)
        view.pack(fill=tk.X, pady=5)

        self.fit_var = tk.BooleanVar(value=False)
        ttk.Checkbutton(view, text="Fit to one page", variable=self.fit_var).pack(side=tk.LEFT, padx=5)
        ttk.Label(view, text="Scale %:").pack(side=tk.LEFT)
        self.scale_var = tk.StringVar(value="100")
        ttk.Spinbox(view, from_=10, to=200, increment=10, textvariable=self.scale_var, width=6).pack(
            side=tk.LEFT, padx=5)
        ttk.Label(view, text="Format:").pack(side=tk.LEFT, padx=(15, 0))
        self.format_var = tk.StringVar(value=FORMATS[0])
        ttk.Combobox(view, state="readonly", width=8, values=FORMATS, textvariable=self.format_var).pack(
            side=tk.LEFT, padx=5)

        self.lbl_totals = ttk.Label(frm, text="")
        self.lbl_totals.pack(fill=tk.X, pady=5)

        actions = ttk.Frame(frm)
        actions.pack(fill=tk.X, pady=5)

        ttk.Label(actions, text="Output folder:").pack(side=tk.LEFT)
        self.out_dir_var = tk.StringVar(value=str(default_output_dir()))
        ttk.Entry(actions, textvariable=self.out_dir_var, width=60).pack(side=tk.LEFT, padx=5)
        ttk.Button(actions, text="...", command=self.on_choose_out_dir).pack(side=tk.LEFT)

        self.btn_export = ttk.Button(actions, text="Export", command=self.on_export)
        self.btn_export.pack(side=tk.RIGHT)
        ttk.Button(actions, text="E-mail", command=self.on_mail).pack(side=tk.RIGHT, padx=5)

        self.progress = ttk.Progressbar(frm, mode="indeterminate")
        self.progress.pack(fill=tk.X, pady=5)

        logbox = ttk.LabelFrame(frm, text="Log", padding=10)
        logbox.pack(fill=tk.BOTH, expand=True)

        self.txt_log = tk.Text(logbox, height=18, wrap="word")
        self.txt_log.pack(fill=tk.BOTH, expand=True)

        self._show_totals()
        self._log(f"Ready. {len(self.projects)} archived project(s) in {self.repos.data_dir}")
        self._log(f"Session log: {current_log_file(self.logger)}")

    def _log(self, msg: str):
        self.logger.info(msg)
        # widgets are only touched from the Tk thread
        self.root.after(0, lambda m=msg: self._log_ui(m))

    def _log_ui(self, msg: str):
        self.txt_log.insert(tk.END, msg + "\n")
        self.txt_log.see(tk.END)

    def _selected(self) -> Optional[Project]:
        label = self.cb_project.get()
        if not label:
            return None
        if label == DRAFT_LABEL:
            return self.draft
        idx = self.cb_project.current()
        return self.projects[idx] if 0 <= idx < len(self.projects) else None

    def _show_totals(self):
        project = self._selected()
        if project is None:
            self.lbl_totals.config(text="No project selected")
            return
        self.fit_var.set(project.fit_to_page)
        self.scale_var.set(str(project.scale_percent))
        totals = compute_totals(project, self.config, self.rules, use_project_rates=not project.is_draft)
        parts = [f"{label}: {fmt_money(amount)} ({pct}%)" for label, amount, pct in cost_breakdown(totals)]
        self.lbl_totals.config(text=f"Total {fmt_whole(totals.grand_total)} {CURRENCY}  |  " + "  ".join(parts))

    def on_choose_out_dir(self):
        d = filedialog.askdirectory(title="Choose output folder")
        if d:
            self.out_dir_var.set(d)

    def on_import_catalog(self):
        path = filedialog.askopenfilename(title="Choose price list", filetypes=[("Excel", "*.xlsx")])
        if not path:
            return
        try:
            imported = read_materials_from_excel(path)
        except (OSError, ValueError) as e:
            self._log(f"Price list import failed: {e}")
            messagebox.showerror("Import error", str(e))
            return
        merged = merge_materials(self.repos.catalog.load(), imported)
        self.repos.catalog.save(merged)
        self._log(f"Catalog updated from {path}: {len(imported)} row(s), {len(merged)} material(s) total")

    def on_mail(self):
        project = self._selected()
        if project is None:
            return
        totals = compute_totals(project, self.config, self.rules, use_project_rates=not project.is_draft)
        webbrowser.open(build_mailto(project, totals, self.config.company_email, "Please find our quotation."))

    def on_export(self):
        project = self._selected()
        if project is None:
            messagebox.showwarning("No project", "Save a project in the estimator first.")
            return
        try:
            scale = float(self.scale_var.get().replace(",", "."))
        except ValueError:
            messagebox.showerror("Error", "Scale must be a number between 10 and 200.")
            return

        out_dir = Path(self.out_dir_var.get()).expanduser()
        out_dir.mkdir(parents=True, exist_ok=True)

        self.btn_export.config(state=tk.DISABLED)
        self.progress.start(10)

        th = threading.Thread(
            target=self._export_worker,
            args=(project, out_dir, self.fit_var.get(), scale, self.format_var.get()),
            daemon=True,
        )
        th.start()

    def _export_worker(self, project: Project, out_dir: Path, fit: bool, scale: float, fmt: str):
        try:
            quote_no = project.proposal_id or datetime.now().strftime("%Y%m%d_%H%M%S")
            base_out = out_dir / f"Quotation_{_safe_name(project.name)}_{quote_no}"
            self._log(f"Exporting '{project.name}' as {fmt} (fit={fit}, scale={scale}%)...")

            if fmt == "PDF":
                out_path = self.exporter.export(project, base_out.with_suffix(".pdf"), fit, scale)
            elif fmt == "DOCX":
                out_path = base_out.with_suffix(".docx")
                render_proposal_docx(render_proposal(project, self.config, self.rules), str(out_path))
            else:
                out_path = base_out.with_suffix(".xlsx")
                render_quote_xlsx(render_proposal(project, self.config, self.rules), str(out_path))

            self._log(f"Saved: {out_path}")
        except ExportInProgress as e:
            self._log(str(e))
        except Exception as e:
            self._log(f"Error: {e}")
            err_msg = str(e)
            self.root.after(0, lambda m=err_msg: messagebox.showerror("Error", m))
        finally:
            self.root.after(0, self._ui_finish)

    def _ui_finish(self):
        self.progress.stop()
        self.btn_export.config(state=tk.NORMAL)


def main():
    root = tk.Tk()
    AppGUI(root)
    root.mainloop()


if __name__ == "__main__":
    main()
