#!/usr/bin/env python3
"""
Match Evaluator for the Quiz Question Matching System
Runs a labeled set of observed questions through the service, builds an
outcome matrix and per-strategy analysis, and sweeps the global confidence
floor so thresholds can be recalibrated from data.
"""

import json
import argparse
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import seaborn as sns

from quiz_match_service import QuizMatchService

EXPECTED_LABELS = ['match', 'none']
PREDICTED_LABELS = ['same_entry', 'other_entry', 'none']


class MatchEvaluator:
    """Outcome matrix and threshold analysis over labeled cases"""

    def __init__(self, service: QuizMatchService):
        self.service = service
        self.results: List[Dict[str, Any]] = []

    @staticmethod
    def load_cases(path: str) -> List[Dict[str, Any]]:
        """Labeled cases: {"question", "options", "expected_entry_key" (null for no match), "case_type"}"""
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return [case for case in data if isinstance(case, dict) and case.get('question')]

    def add_result(self, question: str, expected_key: Optional[str], result: Dict[str, Any],
                   case_type: str = "general"):
        predicted_key = result.get('entry_key') if result.get('found') else None
        if predicted_key is None:
            predicted = 'none'
        elif predicted_key == expected_key:
            predicted = 'same_entry'
        else:
            predicted = 'other_entry'

        self.results.append({
            'question': question,
            'case_type': case_type,
            'expected': 'match' if expected_key else 'none',
            'predicted': predicted,
            'expected_key': expected_key,
            'predicted_key': predicted_key,
            'correct': predicted == 'same_entry' or (expected_key is None and predicted == 'none'),
            'found': bool(result.get('found')),
            'confidence': float(result.get('confidence', 0.0)),
            'strategy': result.get('strategy') or 'none',
            'is_fallback': bool(result.get('is_fallback', False)),
            'rejection_reasons': result.get('rejection_reasons', []),
            'timestamp': datetime.now().isoformat()
        })

    def run_cases(self, cases: Iterable[Dict[str, Any]], verbose: bool = False):
        cases = list(cases)
        if verbose:
            print(f"🧪 Evaluating {len(cases)} labeled cases")
            print("=" * 60)

        for i, case in enumerate(cases, 1):
            question = case['question']
            result = self.service.answer_question(
                question, case.get('options') or [],
                course_name=case.get('course_name'), test_name=case.get('test_name')
            )
            self.add_result(question, case.get('expected_entry_key'), result,
                            case.get('case_type', 'general'))

            if verbose:
                outcome = self.results[-1]
                status = "✅" if outcome['correct'] else "❌"
                print(f"{status} {i}/{len(cases)} {outcome['case_type']}: {outcome['predicted']} "
                      f"({outcome['confidence']:.1%}, {outcome['strategy']})")

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(self.results)

    def generate_outcome_matrix(self) -> pd.DataFrame:
        """Expected outcome (rows) against predicted outcome (columns)"""
        matrix = pd.DataFrame(0, index=EXPECTED_LABELS, columns=PREDICTED_LABELS)
        for result in self.results:
            matrix.loc[result['expected'], result['predicted']] += 1
        return matrix

    def generate_strategy_analysis(self) -> pd.DataFrame:
        df = self.to_dataframe()
        if df.empty:
            return pd.DataFrame(columns=['strategy', 'total', 'correct', 'accuracy',
                                         'avg_confidence', 'fallbacks'])
        grouped = df.groupby('strategy').agg(
            total=('correct', 'size'),
            correct=('correct', 'sum'),
            avg_confidence=('confidence', 'mean'),
            fallbacks=('is_fallback', 'sum'),
        ).reset_index()
        grouped['accuracy'] = grouped['correct'] / grouped['total']
        return grouped[['strategy', 'total', 'correct', 'accuracy', 'avg_confidence', 'fallbacks']]

    def sweep_min_confidence(self, thresholds: Optional[Iterable[float]] = None) -> pd.DataFrame:
        """Precision / recall if only matches with confidence >= t were accepted"""
        thresholds = list(thresholds) if thresholds is not None else list(np.round(np.arange(0.0, 1.01, 0.05), 2))
        df = self.to_dataframe()
        expected_matches = int((df['expected'] == 'match').sum()) if not df.empty else 0

        rows = []
        for t in thresholds:
            if df.empty:
                accepted = df
            else:
                accepted = df[df['found'] & (df['confidence'] >= t)]
            true_accepts = int((accepted['predicted'] == 'same_entry').sum()) if len(accepted) else 0
            false_accepts = len(accepted) - true_accepts
            rows.append({
                'threshold': float(t),
                'accepted': len(accepted),
                'true_accepts': true_accepts,
                'false_accepts': false_accepts,
                'precision': true_accepts / len(accepted) if len(accepted) else 1.0,
                'recall': true_accepts / expected_matches if expected_matches else 0.0,
            })
        return pd.DataFrame(rows)

    def plot_outcome_matrix(self, save_path: str = "match_outcome_matrix.png") -> pd.DataFrame:
        matrix = self.generate_outcome_matrix()

        plt.figure(figsize=(8, 6))
        sns.heatmap(matrix, annot=True, fmt='d', cmap='Blues')
        plt.title('Quiz Matching - Outcome Matrix', fontsize=14, fontweight='bold')
        plt.xlabel('Predicted Outcome')
        plt.ylabel('Expected Outcome')
        plt.tight_layout()
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        plt.close()
        print(f"📊 Outcome matrix saved to: {save_path}")
        return matrix

    def plot_threshold_sweep(self, save_path: str = "threshold_sweep.png") -> pd.DataFrame:
        sweep = self.sweep_min_confidence()

        fig, ax = plt.subplots(figsize=(10, 6))
        ax.plot(sweep['threshold'], sweep['precision'], marker='o', label='Precision')
        ax.plot(sweep['threshold'], sweep['recall'], marker='s', label='Recall')
        ax.set_xlabel('Global confidence floor')
        ax.set_ylabel('Rate')
        ax.set_ylim(0, 1.05)
        ax.set_title('Precision / Recall by Confidence Floor')
        ax.legend()
        plt.tight_layout()
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        plt.close(fig)
        print(f"📈 Threshold sweep saved to: {save_path}")
        return sweep

    def overall_metrics(self) -> Dict[str, Any]:
        total = len(self.results)
        if total == 0:
            return {'total_cases': 0}
        correct = sum(1 for r in self.results if r['correct'])
        found = sum(1 for r in self.results if r['found'])
        false_matches = sum(1 for r in self.results if r['expected'] == 'none' and r['found'])
        return {
            'total_cases': total,
            'accuracy': correct / total,
            'match_rate': found / total,
            'false_match_count': false_matches,
            'wrong_entry_count': sum(1 for r in self.results if r['predicted'] == 'other_entry'),
            'average_confidence': float(np.mean([r['confidence'] for r in self.results])),
        }

    def generate_detailed_report(self, save_path: str = "match_evaluation_report.json") -> Dict[str, Any]:
        report = {
            'metadata': {
                'timestamp': datetime.now().isoformat(),
                'total_cases': len(self.results),
                'min_confidence': self.service.matcher_config.min_confidence,
            },
            'overall_metrics': self.overall_metrics(),
            'outcome_matrix': self.generate_outcome_matrix().to_dict(),
            'strategy_analysis': self.generate_strategy_analysis().to_dict('records'),
            'threshold_sweep': self.sweep_min_confidence().to_dict('records'),
            'detailed_results': self.results
        }
        with open(save_path, 'w', encoding='utf-8') as f:
            json.dump(report, f, ensure_ascii=False, indent=2, default=str)
        print(f"📋 Detailed report saved to: {save_path}")
        return report

    def print_summary(self):
        metrics = self.overall_metrics()
        if not metrics.get('total_cases'):
            print("No cases evaluated")
            return

        print("=" * 60)
        print("📊 MATCH EVALUATION SUMMARY")
        print("=" * 60)
        print(f"🧪 Total cases: {metrics['total_cases']}")
        print(f"✅ Accuracy: {metrics['accuracy']:.1%}")
        print(f"🎯 Match rate: {metrics['match_rate']:.1%}")
        print(f"⚠️  False matches: {metrics['false_match_count']}")
        print(f"🔄 Wrong entries: {metrics['wrong_entry_count']}")
        print(f"📈 Average confidence: {metrics['average_confidence']:.1%}")

        sweep = self.sweep_min_confidence()
        best = sweep.loc[(sweep['precision'] + sweep['recall']).idxmax()]
        print(f"🏆 Best balanced floor: {best['threshold']:.2f} "
              f"(precision {best['precision']:.1%}, recall {best['recall']:.1%})")
        print("=" * 60)


def main():
    parser = argparse.ArgumentParser(description="Evaluate matching accuracy on labeled cases")
    parser.add_argument("cases_file", help="JSON file with labeled cases")
    parser.add_argument("--prefix", default="match", help="Prefix for generated files")
    args = parser.parse_args()

    service = QuizMatchService()
    if not service.initialize():
        print("❌ Quiz match service not initialized!")
        return

    print("🚀 Quiz Question Matching - Evaluation")
    print("=" * 60)
    evaluator = MatchEvaluator(service)
    evaluator.run_cases(MatchEvaluator.load_cases(args.cases_file), verbose=True)

    evaluator.plot_outcome_matrix(f"{args.prefix}_outcome_matrix.png")
    evaluator.plot_threshold_sweep(f"{args.prefix}_threshold_sweep.png")
    evaluator.generate_detailed_report(f"{args.prefix}_evaluation_report.json")
    evaluator.print_summary()
    service.close()


if __name__ == "__main__":
    main()
