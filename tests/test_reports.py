"""
Unit tests for merge report writers.
"""

import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import pandas as pd
from Bio import AlignIO, Phylo, SeqIO
from Bio.Seq import Seq

from sangermerge import core, reports

from fake_mafft import fake_run_mafft

REFERENCE = "MWHKCYFEPGW"
CODING = "ATGTGGCATAAATGCTATTTTGAACCGGGTTGG"
WITH_INSERTION = "ATGTGGCATAAAATGCTATTTTGAACCGGGTTGG"


@patch('sangermerge.alignment.run_mafft_alignment', side_effect=fake_run_mafft)
class TestReports(unittest.TestCase):
    """Test writing merge outputs."""

    def setUp(self):
        self.tmpdir = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def _merge(self, reference=None):
        rev = str(Seq(WITH_INSERTION if reference else CODING).reverse_complement())
        return core.merge_reads(
            {"F1": CODING, "F2": CODING},
            {"R1": rev},
            ref_aa_seq=reference,
            processors=1,
        )

    def test_summarize_merge(self, mock_mafft):
        summary = reports.summarize_merge(self._merge())
        self.assertEqual(len(summary), 1)
        row = summary.iloc[0]
        self.assertEqual(row["n_reads"], 3)
        self.assertEqual(row["consensus_length"], len(CODING))
        self.assertEqual(row["called_fraction"], 1.0)
        self.assertEqual(row["total_pairwise_diffs"], 0)
        self.assertEqual(row["total_insertions"], 0)

    def test_write_merge_report(self, mock_mafft):
        result = self._merge()
        files = reports.write_merge_report(result, self.tmpdir / "out", prefix="locus")

        self.assertEqual(
            sorted(files),
            ["alignment", "consensus", "dendrogram", "differences", "distance_matrix", "summary"],
        )
        for path in files.values():
            self.assertTrue(path.exists())

        consensus = SeqIO.read(str(files["consensus"]), "fasta")
        self.assertEqual(str(consensus.seq), CODING)

        aln = AlignIO.read(str(files["alignment"]), "fasta")
        self.assertEqual([rec.id for rec in aln], ["F1", "F2", "R1", "consensus"])

        diffs = pd.read_csv(files["differences"])
        self.assertEqual(diffs["name"].tolist(), ["F1", "F2", "R1"])

        tree = Phylo.read(str(files["dendrogram"]), "newick")
        self.assertEqual(len(tree.get_terminals()), 3)

    def test_indels_written_with_reference(self, mock_mafft):
        result = self._merge(reference=REFERENCE)
        files = reports.write_merge_report(result, self.tmpdir, prefix="ref")

        indels = pd.read_csv(files["indels"])
        self.assertEqual(list(indels.columns), ["read", "insertions", "deletions", "distance"])
        self.assertEqual(indels["insertions"].tolist(), [0, 0, 1])

        summary = pd.read_csv(files["summary"])
        self.assertEqual(summary.loc[0, "total_insertions"], 1)

    def test_generate_html_report(self, mock_mafft):
        result = self._merge(reference=REFERENCE)
        path = reports.generate_html_report(result, self.tmpdir / "report.html", title="COI <locus>")

        self.assertIsNotNone(path)
        content = path.read_text(encoding="utf-8")
        self.assertIn("COI &lt;locus&gt;", content)
        self.assertIn(CODING, content)
        self.assertIn("Frameshift corrections", content)
        self.assertIn("pairwise_diffs_to_consensus", content)


if __name__ == "__main__":
    unittest.main()
