"""
Unit tests for the alignment module.

Tests cover:
- MAFFT wrapper with mocking
- Nucleotide and translation-guided aligners against a deterministic
  MAFFT stand-in
- Reading frame selection and codon splitting
- Real MAFFT alignment when MAFFT is installed
"""

import shutil
import subprocess
import unittest
from unittest.mock import Mock, patch, mock_open

from Bio import SeqIO
from Bio.Seq import Seq
from Bio.SeqRecord import SeqRecord

from sangermerge import alignment
from sangermerge.config import AlignmentConfig
from sangermerge.errors import AlignmentError, InvalidInputError
from sangermerge.genetic_code import STANDARD_GENETIC_CODE

from fake_mafft import fake_run_mafft


class TestMAFFTAlignment(unittest.TestCase):
    """Test MAFFT alignment wrapper with mocking."""

    @patch('shutil.which')
    @patch('subprocess.run')
    @patch('builtins.open', new_callable=mock_open)
    def test_run_mafft_alignment_success(self, mock_file, mock_run, mock_which):
        mock_which.return_value = '/usr/bin/mafft'
        mock_run.return_value = Mock(returncode=0)

        alignment.run_mafft_alignment(
            input_fasta="input.fasta",
            output_fasta="output.fasta",
            threads=4,
        )

        mock_run.assert_called_once()
        args = mock_run.call_args[0][0]
        self.assertEqual(args[0], 'mafft')
        self.assertIn('--auto', args)
        self.assertIn('--nuc', args)
        self.assertEqual(args[args.index('--thread') + 1], '4')
        self.assertEqual(args[-1], 'input.fasta')

    @patch('shutil.which')
    @patch('subprocess.run')
    @patch('builtins.open', new_callable=mock_open)
    def test_run_mafft_alignment_amino(self, mock_file, mock_run, mock_which):
        mock_which.return_value = '/usr/bin/mafft'
        mock_run.return_value = Mock(returncode=0)

        alignment.run_mafft_alignment(
            "input.fasta", "output.fasta",
            algorithm="localpair", amino=True, extra_options=("--maxiterate", "1000"),
        )

        args = mock_run.call_args[0][0]
        self.assertIn('--amino', args)
        self.assertIn('--localpair', args)
        self.assertIn('--maxiterate', args)
        self.assertIn('1000', args)

    @patch('shutil.which')
    def test_run_mafft_alignment_not_found(self, mock_which):
        mock_which.return_value = None

        with self.assertLogs("sangermerge.utils", level="WARNING"):
            with self.assertRaises(AlignmentError) as cm:
                alignment.run_mafft_alignment("input.fasta", "output.fasta")
        self.assertIn("not found", str(cm.exception).lower())

    @patch('sangermerge.alignment.check_external_tool', return_value=False)
    def test_run_mafft_alignment_checks_executable(self, mock_check):
        with self.assertRaises(AlignmentError):
            alignment.run_mafft_alignment(
                "input.fasta", "output.fasta", executable="/opt/mafft/bin/mafft"
            )
        mock_check.assert_called_once_with("/opt/mafft/bin/mafft")

    @patch('shutil.which')
    @patch('subprocess.run')
    @patch('builtins.open', new_callable=mock_open)
    def test_run_mafft_alignment_failure(self, mock_file, mock_run, mock_which):
        mock_which.return_value = '/usr/bin/mafft'
        mock_run.side_effect = subprocess.CalledProcessError(
            returncode=1, cmd='mafft', stderr='Error message'
        )

        with self.assertRaises(AlignmentError):
            alignment.run_mafft_alignment("input.fasta", "output.fasta")


class TestReadingFrames(unittest.TestCase):
    """Test frame selection and codon splitting."""

    def test_choose_frame_fewest_stops(self):
        # frame 1: ATG AAA TAG (1 stop), frame 2: TGA AAT (1), frame 3: GAA ATA (0)
        frame = alignment.choose_reading_frame("ATGAAATAG", STANDARD_GENETIC_CODE)
        self.assertEqual(frame, 3)

    def test_choose_frame_ties_to_lowest(self):
        self.assertEqual(alignment.choose_reading_frame("ATGAAA", STANDARD_GENETIC_CODE), 1)

    def test_split_codons_frame_one(self):
        self.assertEqual(alignment.split_codons("ATGAAAC", 1), ["ATG", "AAA", "C--"])

    def test_split_codons_frame_two(self):
        self.assertEqual(alignment.split_codons("AATGAAAC", 2), ["--A", "ATG", "AAA", "C--"])

    def test_split_codons_frame_three(self):
        units = alignment.split_codons("CCATGAA", 3)
        self.assertEqual(units, ["-CC", "ATG", "AA-"])
        self.assertEqual("".join(units).replace("-", ""), "CCATGAA")


class TestNucleotideAligner(unittest.TestCase):
    """Test plain nucleotide alignment."""

    @patch('sangermerge.alignment.run_mafft_alignment', side_effect=fake_run_mafft)
    def test_rows_in_input_order(self, mock_mafft):
        seqs = {"rev_1": "ACGTAC", "fwd_1": "ACGT", "odd name|x": "ACG"}
        aln = alignment.NucleotideAligner().align(seqs)

        self.assertEqual([rec.id for rec in aln], ["rev_1", "fwd_1", "odd name|x"])
        self.assertEqual(aln.get_alignment_length(), 6)
        self.assertEqual(str(aln[1].seq), "ACGT--")
        mock_mafft.assert_called_once()
        self.assertFalse(mock_mafft.call_args[1]['amino'])

    @patch('sangermerge.alignment.run_mafft_alignment', side_effect=fake_run_mafft)
    def test_config_passed_to_mafft(self, mock_mafft):
        config = AlignmentConfig(mafft_algorithm="globalpair", extra_options=["--ep", "0"])
        alignment.NucleotideAligner(config=config, processors=3).align({"a": "ACGT", "b": "ACGT"})

        kwargs = mock_mafft.call_args[1]
        self.assertEqual(kwargs['algorithm'], "globalpair")
        self.assertEqual(kwargs['threads'], 3)
        self.assertEqual(tuple(kwargs['extra_options']), ("--ep", "0"))

    def test_too_few_sequences(self):
        with self.assertRaises(InvalidInputError):
            alignment.NucleotideAligner().align({"a": "ACGT"})

    def test_missing_output_rows(self):
        def drop_last(input_fasta, output_fasta, **kwargs):
            records = list(SeqIO.parse(input_fasta, "fasta"))[:-1]
            SeqIO.write(records, output_fasta, "fasta")
            return output_fasta

        with patch('sangermerge.alignment.run_mafft_alignment', side_effect=drop_last):
            with self.assertRaises(AlignmentError):
                alignment.NucleotideAligner().align({"a": "ACGT", "b": "ACGT"})

    def test_mafft_failure_propagates(self):
        with patch('sangermerge.alignment.run_mafft_alignment',
                   side_effect=AlignmentError("MAFFT alignment failed")):
            with self.assertRaises(AlignmentError):
                alignment.NucleotideAligner().align({"a": "ACGT", "b": "ACGT"})


class TestTranslationAligner(unittest.TestCase):
    """Test translation-guided alignment."""

    @patch('sangermerge.alignment.run_mafft_alignment', side_effect=fake_run_mafft)
    def test_gaps_are_whole_codons(self, mock_mafft):
        seqs = {"a": "ATGAAACCC", "b": "ATGAAA"}
        aln = alignment.TranslationAligner().align(seqs)

        self.assertEqual(str(aln[0].seq), "ATGAAACCC")
        self.assertEqual(str(aln[1].seq), "ATGAAA---")
        self.assertTrue(mock_mafft.call_args[1]['amino'])

    @patch('sangermerge.alignment.run_mafft_alignment', side_effect=fake_run_mafft)
    def test_rows_degap_to_input(self, mock_mafft):
        seqs = {"a": "CATGAAACCCGG", "b": "ATGAAACC", "c": "TTATGAAA"}
        aln = alignment.TranslationAligner().align(seqs)

        for rec in aln:
            self.assertEqual(str(rec.seq).replace("-", ""), seqs[rec.id])
        self.assertEqual(aln.get_alignment_length() % 3, 0)

    def test_translate_units(self):
        aligner = alignment.TranslationAligner()
        self.assertEqual(aligner._translate_units(["--A", "ATG", "TAA", "C--"]), "XM" + "XX")

    def test_back_translate(self):
        row = alignment.TranslationAligner._back_translate("a", "M-K", ["ATG", "AAA"])
        self.assertEqual(row, "ATG---AAA")

    def test_back_translate_count_mismatch(self):
        with self.assertRaises(AlignmentError):
            alignment.TranslationAligner._back_translate("a", "MK-", ["ATG"])
        with self.assertRaises(AlignmentError):
            alignment.TranslationAligner._back_translate("a", "M--", ["ATG", "AAA"])


class TestGetAligner(unittest.TestCase):
    """Test aligner selection."""

    def test_no_reference(self):
        self.assertIsInstance(alignment.get_aligner(None), alignment.NucleotideAligner)

    def test_with_reference(self):
        aligner = alignment.get_aligner("MKP", genetic_code=STANDARD_GENETIC_CODE)
        self.assertIsInstance(aligner, alignment.TranslationAligner)


@unittest.skipUnless(shutil.which("mafft"), "MAFFT not installed")
class TestRealMAFFT(unittest.TestCase):
    """Alignment with the real MAFFT executable."""

    def test_nucleotide_alignment(self):
        seqs = {
            "fwd_1": "ACGTACGTTAGCATCGATCGATCG",
            "fwd_2": "ACGTACGTTAGCATCGATCG",
            "rev_1": "ACGTACGTTAGCATCGATCGATCG",
        }
        aln = alignment.NucleotideAligner().align(seqs)
        self.assertEqual([rec.id for rec in aln], list(seqs))
        for rec in aln:
            self.assertEqual(str(rec.seq).replace("-", ""), seqs[rec.id])

    def test_translation_alignment(self):
        seqs = {
            "a": "ATGTGGCATAAATGCTATTTTGAACCGGGTTGG",
            "b": "ATGTGGCATAAATGCTATTTTGAA",
        }
        aln = alignment.TranslationAligner().align(seqs)
        for rec in aln:
            row = str(rec.seq)
            self.assertEqual(row.replace("-", ""), seqs[rec.id])
        self.assertEqual(aln.get_alignment_length() % 3, 0)


if __name__ == "__main__":
    unittest.main()
