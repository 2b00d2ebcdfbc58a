""" energy of binary variables minimized by a single min-cut

Thin layer over PyMaxflow's Graph[int] expressing unary and pairwise terms.
A variable is 0 when its node ends on the source side of the cut, 1 on the sink side.
"""

import maxflow

from kz_errors import SolverInconsistency

# Global constants
VAR_ALPHA = -1  # assignment already has the alpha label, always active
VAR_ABSENT = -2  # assignment does not exist (outside the right image, or occluded)
INFINITE_CAPACITY = 1 << 30  # weight of forbidden configurations


def is_var(var):
    return var >= 0


class Energy:
    """ E(x) = constant + sum of unary terms + sum of submodular pairwise terms """

    def __init__(self, nodes_hint=0, edges_hint=0):
        self.graph = maxflow.Graph[int](max(nodes_hint, 1), max(edges_hint, 1))
        self.constant = 0
        self._var_count = 0
        self._minimized = False

    def add_variable(self, e0=0, e1=0):
        """ add a binary variable costing e0 at value 0 and e1 at value 1

        Returns:
            int: variable id
        """
        var = int(self.graph.add_nodes(1)[0])
        self._var_count += 1
        if e0 or e1:
            self.add_term1(var, e0, e1)
        return var

    def add_constant(self, value):
        self.constant += value

    def add_term1(self, x, e0, e1):
        low = min(e0, e1)
        self.constant += low
        # the source capacity is cut when x is on the sink side (x = 1)
        self.graph.add_tedge(x, e1 - low, e0 - low)

    def add_term2(self, x, y, e00, e01, e10, e11):
        """ add a pairwise term, E(x, y) = e_xy

        E = e00 + (e10 - e00) x + (e11 - e10) y + (e01 + e10 - e00 - e11) (1 - x) y
        """
        weight = e01 + e10 - e00 - e11
        if weight < 0:
            raise SolverInconsistency(
                f'non-submodular term ({e00}, {e01}, {e10}, {e11}) on ({x}, {y})')
        self.constant += e00
        self.add_term1(x, 0, e10 - e00)
        self.add_term1(y, 0, e11 - e10)
        if weight:
            self.graph.add_edge(x, y, weight, 0)

    def forbid01(self, x, y):
        """ forbid x = 0, y = 1 """
        self.graph.add_edge(x, y, INFINITE_CAPACITY, 0)

    def var_count(self):
        return self._var_count

    def minimize(self):
        """ solve the min-cut

        Returns:
            int: minimum energy
        """
        flow = self.graph.maxflow() if self.var_count() else 0
        self._minimized = True
        return int(flow) + self.constant

    def get_var(self, x):
        if not self._minimized:
            raise SolverInconsistency('get_var called before minimize')
        return int(self.graph.get_segment(x))
